# pulsesift

Building blocks for searching radio filterbank data for single dispersed
pulses, such as fast radio bursts and pulsar single pulses. The blocks are
built on numpy, and the running median uses scipy.

## What is in the package

- `pulsesift.databuffer.DataBuffer` holds one block of data as a float32
  array in `(nsamples, nchans)` order. It also carries the sampling time
  `tsamp` and the channel `frequencies`.
  - `mean_rms()` returns the mean and standard deviation of each channel.
  - `dump_text(path)` writes the block as text.
  - `dump_binary(path)` writes the block as raw float32.
- `pulsesift.baseline` holds the baseline filters.
  - `running_median(data, window)` is a centred running median. At the edges
    it repeats the end values.
  - `BaseLine(width)` fits `alpha_j * s(t) + beta_j` to each channel and
    subtracts it. Here `s(t)` is the running median of the band-averaged
    series, taken over `width` seconds. The block is then normalised channel
    by channel.
  - If `width / tsamp` is below 3, `BaseLine` passes the data through
    unchanged.
  - `filter` works in place. `run` writes into the `BaseLine`'s own buffer.
    `filter2` also flattens the band power with a second running median.
- `pulsesift.patch.Patch(filltype, width, threshold)` repairs bad time
  samples, with `filltype` `"mean"` or `"rand"`. Any other value, including
  the default `"none"`, turns it off.
  - `filter` finds samples whose band has zero variance and fills them and
    their neighbours.
  - `filter2` finds samples whose band mean strays from its running median by
    more than `threshold` times the interquartile range.
  - Bad samples are filled with the channel means (`"mean"`) or with Gaussian
    noise (`"rand"`). The fraction of samples found bad is kept in
    `killrate`.
- `pulsesift.preprocesslite.PreprocessLite(td, fd, thresig, filltype)`
  normalises each channel. It gives zero weight to channels whose skewness,
  kurtosis or lag-one correlation lie outside the interquartile fences set by
  `thresig`, then downsamples by `td` in time and `fd` in frequency.
  - With `filltype="rand"`, zapped channels are filled with Gaussian noise.
- `pulsesift.subdedispersion` holds the dedispersion.
  - `SubbandDedispersion(dms, ddm, ndm, ndump, overlap)` dedisperses a stream
    of blocks to `ndm` trial DMs. It works in two stages: first channels to
    subbands, then subbands to trial DMs, which is the `Subband` stage kept in
    `.sub`.
  - `get_timdata(idm, overlapped)` returns the dedispersed series for trial
    `idm`. `get_subdata(idm, overlapped)` returns the subband data aligned at
    trial `idm`.
  - With `overlapped=True`, the tail that `sub.cache()` kept from the
    previous block is put in front.
- `pulsesift.boxcar.Boxcar` runs boxcar matched filters of the given widths
  over every trial DM.
  - `mxS` keeps the best S/N at each sample. `mxwn` keeps the width that gave
    it.
  - `run` returns `False` while the dedispersion is still filling its
    buffers.
  - `dump_text(path)` writes `mxS` as text.
- `pulsesift.hough` provides a tree-structured Hough transform.
  `hough_transform(data, nrow, ncol, get_shift)` sums the rows of
  `data`, shifting them cyclically. `shift_plan` builds the per-level shifts
  it uses. `nrow` must be a power of two.
- `pulsesift.units` provides `dmdelay(dm, fh, fl)`, the dispersive delay in
  seconds between two frequencies in MHz. It also provides `fdot2acc` and
  `acc2fdot`.

## Installation

```
pip install pulsesift
```

## A minimal pipeline

```python
import numpy as np

from pulsesift.boxcar import Boxcar
from pulsesift.databuffer import DataBuffer
from pulsesift.preprocesslite import PreprocessLite
from pulsesift.subdedispersion import SubbandDedispersion

nchans, ndump, tsamp = 64, 1024, 1e-3
freqs = np.linspace(1500.0, 1200.0, nchans)
block = DataBuffer(ndump, nchans, tsamp, freqs)

preprocess = PreprocessLite(td=1, fd=1, thresig=3.0, filltype="mean")
preprocess.prepare(block)

dedisp = SubbandDedispersion(dms=0.0, ddm=1.0, ndm=128, ndump=ndump, overlap=0.1)
dedisp.prepare(block)

boxcar = Boxcar()
boxcar.prepare(dedisp)

rng = np.random.default_rng(1)
for _ in range(8):
    block.buffer[:] = rng.normal(size=(ndump, nchans))
    out = preprocess.run(block)
    dedisp.run(out, ndump)
    if boxcar.run(dedisp, [1, 2, 4, 8, 16], False):
        idm, isamp = np.unravel_index(boxcar.mxS.argmax(), boxcar.mxS.shape)
        print(dedisp.dms + idm * dedisp.ddm, isamp, boxcar.mxwn[idm, isamp], boxcar.mxS[idm, isamp])
    dedisp.sub.cache()
```

## What the package does not do

- It reads no telescope data formats. Blocks have to be filled by the caller.
- It writes no dedispersed time series files.
- It has no command-line program.
- The search stops at the S/N and width maps of `Boxcar`. Grouping detections
  into candidates, and plotting or archiving them, are left to the caller.

## Running the tests

```
pip install "pulsesift[test]"
pytest
```
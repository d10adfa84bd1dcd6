"""Channel zapping by skewness, kurtosis and lag-one correlation, with downsampling."""

from __future__ import annotations

import logging

import numpy as np

from pulsesift.databuffer import DataBuffer

logger = logging.getLogger(__name__)

_FLT_MAX = float(np.finfo(np.float32).max)


def _quartiles(values: np.ndarray) -> tuple[float, float]:
    ordered = np.sort(values)
    quarter = ordered.size // 4
    return float(ordered[quarter]), float(ordered[ordered.size - 1 - quarter])


class PreprocessLite(DataBuffer):
    """Normalise channels, drop outlier channels and downsample in one pass."""

    def __init__(
        self, td: int = 1, fd: int = 1, thresig: float = 3.0, filltype: str = "mean"
    ) -> None:
        if td < 1 or fd < 1:
            raise ValueError("downsampling factors must be at least 1")
        super().__init__()
        self.td = int(td)
        self.fd = int(fd)
        self.thresig = float(thresig)
        self.filltype = filltype
        self.killrate = 0.0
        self._rng = np.random.default_rng()

    def prepare(self, databuffer: DataBuffer) -> None:
        """Set up the output geometry from the incoming block."""
        nchans = databuffer.nchans // self.fd
        self.resize(databuffer.nsamples // self.td, nchans)
        self.tsamp = databuffer.tsamp * self.td

        freqs = np.asarray(databuffer.frequencies, dtype=np.float64)
        self.frequencies = freqs[: nchans * self.fd].reshape(nchans, self.fd).mean(axis=1)
        self.closable = False

        logger.info(
            "Preprocess Info: nsamples=%d nchans=%d tsamp=%g td=%d fd=%d IQR threshold=%g",
            databuffer.nsamples,
            databuffer.nchans,
            databuffer.tsamp,
            self.td,
            self.fd,
            self.thresig,
        )

    def _channel_statistics(self, data: np.ndarray):
        n = data.shape[0]
        m1 = data.mean(axis=0)
        m2 = (data**2).mean(axis=0)
        m3 = (data**3).mean(axis=0)
        m4 = (data**4).mean(axis=0)
        corr = (data[1:] * data[:-1]).sum(axis=0) / (n - 1)

        sq = m1 * m1
        var = m2 - sq
        ok = var != 0
        safe = np.where(ok, var, 1.0)

        skew = (m3 - 3.0 * m2 * m1 + 2.0 * sq * m1) / (safe * np.sqrt(np.abs(safe)))
        kurt = (m4 - 4.0 * m3 * m1 + 6.0 * m2 * sq - 3.0 * sq * sq) / (safe * safe) - 3.0
        corr = (corr - sq) / safe

        skew = np.where(ok, skew, _FLT_MAX).astype(np.float32)
        kurt = np.where(ok, kurt, _FLT_MAX).astype(np.float32)
        corr = np.where(ok, corr, _FLT_MAX)
        std = np.sqrt(np.where(ok, var, 1.0)).astype(np.float32)
        return m1.astype(np.float32), std, skew, kurt, corr

    def run(self, databuffer: DataBuffer) -> DataBuffer:
        """Return the normalised, zapped and downsampled block held by this buffer."""
        logger.debug("perform skewness-kurtosis filter with iqr threshold=%g", self.thresig)
        if databuffer.nsamples < 2:
            raise ValueError("at least two samples are needed for channel statistics")
        if self.closable:
            self._allocate()

        data = databuffer.buffer.astype(np.float64)
        chmean, chstd, skew, kurt, corr = self._channel_statistics(data)

        kq1, kq3 = _quartiles(kurt)
        sq1, sq3 = _quartiles(skew)
        cq1, cq3 = _quartiles(corr)
        kr, sr, cr = kq3 - kq1, sq3 - sq1, cq3 - cq1
        t = self.thresig

        good = (
            (kurt >= kq1 - t * kr)
            & (kurt <= kq3 + t * kr)
            & (skew >= sq1 - t * sr)
            & (skew <= sq3 + t * sr)
            & (corr >= cq1 - t * cr)
            & (corr <= cq3 + t * cr)
        )
        weights = good.astype(np.float32)
        self.killrate = int((~good).sum()) / databuffer.nchans

        ns, nc = self.nsamples, self.nchans
        normed = weights * (data - chmean) / chstd
        block = normed[: ns * self.td, : nc * self.fd]
        out = block.reshape(ns, self.td, nc, self.fd).sum(axis=(1, 3))

        if self.filltype == "rand":
            dead = np.flatnonzero(weights[:nc] == 0.0)
            if dead.size:
                stddev = np.sqrt(self.td * self.fd)
                out[:, dead] = self._rng.normal(0.0, stddev, size=(ns, dead.size))

        self.buffer = out.astype(np.float32)
        self.equalized = self.td == 1 and self.fd == 1
        self.counter += ns
        databuffer.isbusy = False
        self.isbusy = True
        if databuffer.closable:
            databuffer._release()
        logger.debug("finished (killrate = %g)", self.killrate)
        return self
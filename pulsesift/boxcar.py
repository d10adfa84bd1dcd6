"""Boxcar matched filtering of dedispersed time series."""

from __future__ import annotations

import math
import os
from typing import Sequence

import numpy as np


class Boxcar:
    """Best boxcar S/N and width for every sample of every trial DM.

    ``mxS`` and ``mxwn`` are (ndm, nsamples) arrays.  They hold, for each
    sample, the largest S/N found over the trial widths and the width that
    gave it.
    """

    def __init__(self) -> None:
        self.counter = 0
        self.tsamp = 0.0
        self.nsamples = 0
        self.dms = 0.0
        self.ddm = 0.0
        self.ndm = 0
        self.maxwn = 0
        self.fmin = 0.0
        self.fmax = 0.0
        self.mxS = np.zeros((0, 0), dtype=np.float32)
        self.mxwn = np.zeros((0, 0), dtype=np.int32)

    def resize(self, nsamples: int, ndm: int) -> None:
        """Allocate zeroed result arrays and reset the DM and time scales."""
        if nsamples < 0 or ndm < 0:
            raise ValueError("nsamples and ndm must not be negative")
        self.nsamples = int(nsamples)
        self.ndm = int(ndm)
        self.mxS = np.zeros((self.ndm, self.nsamples), dtype=np.float32)
        self.mxwn = np.zeros((self.ndm, self.nsamples), dtype=np.int32)
        self.tsamp = 0.0
        self.dms = 0.0
        self.ddm = 0.0

    def prepare(self, dedisp) -> None:
        """Take the geometry of the dedispersion that feeds this filter."""
        self.resize(dedisp.ndump + dedisp.noverlap, dedisp.ndm)
        self.dms = float(dedisp.dms)
        self.ddm = float(dedisp.ddm)
        self.tsamp = float(dedisp.tsamp)

        freqs = [float(f) for f in np.asarray(dedisp.frequencies).ravel()]
        self.fmin = min([1e6, *freqs])
        self.fmax = max([0.0, *freqs])

    def run(self, dedisp, widths: Sequence[int], iqr: bool = False) -> bool:
        """Filter every trial DM; return False while the pipeline is still filling."""
        self.counter = dedisp.counter
        if self.counter <= dedisp.offset + dedisp.ndump:
            return False

        wns = [int(w) for w in widths]
        if not wns:
            raise ValueError("at least one boxcar width is needed")
        if any(w < 1 for w in wns):
            raise ValueError("boxcar widths must be positive")
        self.maxwn = wns[-1]

        for idm in range(dedisp.ndm):
            self.match(idm, wns, dedisp, iqr)
        return True

    def match(self, idm: int, widths: Sequence[int], dedisp, iqr: bool = False) -> None:
        """Run all trial widths over the overlapped time series of trial ``idm``."""
        if not 0 <= idm < self.ndm:
            raise IndexError(f"DM index {idm} out of range 0..{self.ndm - 1}")
        n = self.nsamples
        if n == 0:
            raise ValueError("boxcar holds no samples")
        tim = np.asarray(dedisp.get_timdata(idm, True), dtype=np.float64).ravel()
        if tim.size != n:
            raise ValueError(f"expected a series of {n} samples, got {tim.size}")

        if iqr:
            ordered = np.sort(tim)
            q1 = ordered[n // 4]
            q2 = ordered[n // 2]
            q3 = ordered[n - 1 - n // 4]
            mean = float(q2)
            var = ((q3 - q1) / 1.349) ** 2
        else:
            mean = float(tim.mean())
            var = float((tim * tim).mean() - mean * mean)

        best_s = np.zeros(n, dtype=np.float32)
        best_wn = np.zeros(n, dtype=np.int32)
        csum = np.cumsum(tim - mean)

        if var > 0:
            for wn in widths:
                wn = int(wn)
                wl = wn // 2 + 1
                wh = (wn - 1) // 2
                if n - wh <= wl:
                    continue
                idx = np.arange(wl, n - wh)
                scale = math.sqrt(1.0 / (wn * var))
                snr = ((csum[idx + wh] - csum[idx - wl]) * scale).astype(np.float32)
                better = snr >= best_s[idx]
                best_s[idx[better]] = snr[better]
                best_wn[idx[better]] = wn

        self.mxS[idm] = best_s
        self.mxwn[idm] = best_wn

    def dump_text(self, path: str | os.PathLike) -> None:
        """Write ``mxS`` as text, one trial DM per line."""
        with open(path, "w") as fh:
            for row in self.mxS:
                fh.write("".join(f"{float(v):f} " for v in row))
                fh.write("\n")
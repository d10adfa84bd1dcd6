"""Replacement of dropped or corrupted time samples."""

from __future__ import annotations

import logging

import numpy as np

from pulsesift.baseline import running_median
from pulsesift.databuffer import DataBuffer

logger = logging.getLogger(__name__)

_FILL_TYPES = ("mean", "rand")


class Patch(DataBuffer):
    """Find bad time samples and fill them with channel means or Gaussian noise."""

    def __init__(
        self, filltype: str = "none", width: float = 0.1, threshold: float = 5.0
    ) -> None:
        super().__init__()
        self.filltype = filltype
        self.width = float(width)
        self.threshold = float(threshold)
        self.killrate = 0.0
        self._rng = np.random.default_rng()

    def prepare(self, databuffer: DataBuffer) -> None:
        """Take the shape, sampling time and frequencies of the incoming blocks."""
        self.resize(databuffer.nsamples, databuffer.nchans)
        self.tsamp = databuffer.tsamp
        self.frequencies = np.array(databuffer.frequencies, dtype=np.float64)

    def _enabled(self) -> bool:
        return self.filltype in _FILL_TYPES

    def _fill(self, databuffer: DataBuffer, mask: np.ndarray) -> DataBuffer:
        """Fill the masked samples using statistics of the unmasked ones."""
        block = databuffer.buffer[: self.nsamples, : self.nchans].astype(np.float64)
        good = block[~mask]
        with np.errstate(invalid="ignore", divide="ignore"):
            cnt = good.shape[0]
            chmean = good.sum(axis=0) / cnt
            chvar = (good * good).sum(axis=0) / cnt - chmean * chmean

        nbad = int(mask.sum())
        if nbad:
            if self.filltype == "mean":
                fill = np.broadcast_to(chmean, (nbad, self.nchans))
            else:
                scale = np.sqrt(np.maximum(chvar, 0.0))
                fill = self._rng.normal(chmean, scale, size=(nbad, self.nchans))
            rows = np.flatnonzero(mask)
            databuffer.buffer[rows, : self.nchans] = fill.astype(np.float32)

        databuffer.equalized = False
        databuffer.isbusy = True
        logger.debug("finished (killrate = %g)", self.killrate)
        return databuffer

    def filter(self, databuffer: DataBuffer) -> DataBuffer:
        """Patch samples whose band has zero variance, together with their neighbours."""
        if not self._enabled():
            return databuffer

        logger.debug("perform running median filter with time scale=%g", self.width)
        block = databuffer.buffer[: self.nsamples, : self.nchans].astype(np.float64)
        mean = block.mean(axis=1)
        var = (block * block).mean(axis=1) - mean * mean

        dead = var <= 0.0
        mask = dead.copy()
        mask[1:] |= dead[:-1]
        mask[:-1] |= dead[1:]

        self.killrate = int(dead.sum()) / self.nsamples
        return self._fill(databuffer, mask)

    def filter2(self, databuffer: DataBuffer) -> DataBuffer:
        """Patch samples whose band mean strays from its running median."""
        if not self._enabled():
            return databuffer

        logger.debug("perform running median filter with time scale=%g", self.width)
        block = databuffer.buffer[: self.nsamples, : self.nchans].astype(np.float64)
        szero = block.mean(axis=1)
        window = max(int(self.width / self.tsamp), 1) if self.tsamp > 0 else 1
        s = running_median(szero, window)

        diff = szero - s
        ssort = np.sort((diff * diff).astype(np.float32))
        quarter = ssort.size // 4
        q1 = float(ssort[quarter])
        q3 = float(ssort[ssort.size - 1 - quarter])
        spread = q3 - q1

        mask = (diff < q1 - self.threshold * spread) | (diff > q3 + self.threshold * spread)
        self.killrate = int(mask.sum()) / self.nsamples
        return self._fill(databuffer, mask)
"""Removal of a slowly varying, band-wide baseline followed by normalisation."""

from __future__ import annotations

import logging

import numpy as np
from scipy.ndimage import median_filter

from pulsesift.databuffer import DataBuffer

logger = logging.getLogger(__name__)


def running_median(data, window) -> np.ndarray:
    """Centred running median of a 1-D series; edges repeat the end values."""
    size = int(window)
    if size < 1:
        raise ValueError(f"window must be at least 1, got {window}")
    series = np.asarray(data, dtype=np.float64)
    if series.ndim != 1:
        raise ValueError("running_median expects a 1-D series")
    if series.size == 0:
        return series.copy()
    return median_filter(series, size=size, mode="nearest")


def _normalise_channels(block: np.ndarray) -> np.ndarray:
    data = block.astype(np.float64)
    mean = data.mean(axis=0)
    var = (data * data).mean(axis=0) - mean * mean
    std = np.sqrt(np.maximum(var, 0.0))
    std[std == 0] = 1.0
    return ((data - mean) / std).astype(np.float32)


class BaseLine(DataBuffer):
    """Fit and subtract a running-median baseline from every channel."""

    def __init__(self, width: float = 0.0) -> None:
        super().__init__()
        self.width = float(width)

    def _window(self) -> float:
        return self.width / self.tsamp if self.tsamp > 0 else 0.0

    def _active(self) -> bool:
        return int(self._window()) >= 3

    def prepare(self, databuffer: DataBuffer) -> None:
        """Take the shape, sampling time and frequencies of the incoming blocks."""
        self.resize(databuffer.nsamples, databuffer.nchans)
        self.tsamp = databuffer.tsamp
        self.frequencies = np.array(databuffer.frequencies, dtype=np.float64)
        if self._active():
            logger.info(
                "Baseline Removal Info: nsamples=%d nchans=%d tsamp=%g width=%g",
                self.nsamples,
                self.nchans,
                self.tsamp,
                self.width,
            )

    def _remove_baseline(self, block: np.ndarray) -> np.ndarray:
        """Subtract alpha_j * s(t) + beta_j per channel, s the median-smoothed band mean."""
        data = block[: self.nsamples, : self.nchans].astype(np.float64)
        n = self.nsamples
        szero = data.mean(axis=1)
        s = running_median(szero, self._window())

        xe = data.sum(axis=0)
        xs = (data * s[:, None]).sum(axis=0)
        se = s.sum()
        ss = (s * s).sum()

        alpha = np.zeros(self.nchans)
        beta = np.zeros(self.nchans)
        tmp = se * se - ss * n
        if tmp != 0:
            alpha = (xe * se - xs * n) / tmp
            beta = (xs * se - xe * ss) / tmp

        return (data - alpha[None, :] * s[:, None] - beta[None, :]).astype(np.float32)

    def filter(self, databuffer: DataBuffer) -> DataBuffer:
        """Remove the baseline in place, normalise each channel and return the input."""
        if not self._active():
            return databuffer

        logger.debug("perform baseline removal with time scale=%g", self.width)
        cleaned = self._remove_baseline(databuffer.buffer)
        databuffer.buffer[: self.nsamples, : self.nchans] = _normalise_channels(cleaned)

        databuffer.equalized = True
        self.counter += self.nsamples
        databuffer.isbusy = True
        logger.debug("finished")
        return databuffer

    def run(self, databuffer: DataBuffer) -> DataBuffer:
        """Write the baseline-removed, normalised block into this buffer and return it."""
        if not self._active():
            return databuffer

        logger.debug("perform baseline removal with time scale=%g", self.width)
        if self.closable:
            self._allocate()

        cleaned = self._remove_baseline(databuffer.buffer)
        self.buffer = _normalise_channels(cleaned)

        self.equalized = True
        self.counter += self.nsamples
        databuffer.isbusy = False
        self.isbusy = True
        if databuffer.closable:
            databuffer._release()
        logger.debug("finished")
        return self

    def filter2(self, databuffer: DataBuffer) -> DataBuffer:
        """Like :meth:`filter`, also flattening the band power with a running median."""
        if not self._active():
            return databuffer

        logger.debug("perform baseline removal with time scale=%g", self.width)
        cleaned = self._remove_baseline(databuffer.buffer).astype(np.float64)

        sstdzero = (cleaned * cleaned).mean(axis=1)
        sstd = running_median(sstdzero, self._window())
        norm = np.zeros_like(sstd)
        nonzero = sstd != 0.0
        norm[nonzero] = 1.0 / sstd[nonzero]
        scaled = (cleaned * norm[:, None]).astype(np.float32)

        databuffer.buffer[: self.nsamples, : self.nchans] = _normalise_channels(scaled)

        databuffer.equalized = True
        self.counter += self.nsamples
        databuffer.isbusy = True
        logger.debug("finished")
        return databuffer
"""Block of filterbank data laid out as (nsamples, nchans)."""

from __future__ import annotations

import os
from typing import Sequence

import numpy as np


class DataBuffer:
    """A block of samples by channels, with its sampling time and channel frequencies."""

    def __init__(
        self,
        nsamples: int = 0,
        nchans: int = 0,
        tsamp: float = 0.0,
        frequencies: Sequence[float] | None = None,
    ) -> None:
        if nsamples < 0 or nchans < 0:
            raise ValueError("nsamples and nchans must not be negative")
        self.equalized = False
        self.isbusy = False
        self.closable = False
        self.counter = 0
        self.tsamp = float(tsamp)
        self.nsamples = int(nsamples)
        self.nchans = int(nchans)
        self.buffer = np.zeros((self.nsamples, self.nchans), dtype=np.float32)
        if frequencies is None:
            self.frequencies = np.zeros(self.nchans, dtype=np.float64)
        else:
            freqs = np.asarray(frequencies, dtype=np.float64)
            if freqs.shape != (self.nchans,):
                raise ValueError(
                    f"expected {self.nchans} frequencies, got {freqs.size}"
                )
            self.frequencies = freqs.copy()

    def resize(self, nsamples: int, nchans: int) -> None:
        """Reallocate a zeroed buffer; existing leading frequencies are kept."""
        if nsamples < 0 or nchans < 0:
            raise ValueError("nsamples and nchans must not be negative")
        self.nsamples = int(nsamples)
        self.nchans = int(nchans)
        self.buffer = np.zeros((self.nsamples, self.nchans), dtype=np.float32)
        freqs = np.zeros(self.nchans, dtype=np.float64)
        keep = min(self.nchans, len(self.frequencies))
        freqs[:keep] = self.frequencies[:keep]
        self.frequencies = freqs

    def mean_rms(self) -> tuple[np.ndarray, np.ndarray]:
        """Return the per-channel mean and standard deviation over samples."""
        data = self.buffer.astype(np.float64)
        if data.shape[0] == 0:
            raise ValueError("buffer holds no samples")
        mean = data.mean(axis=0)
        var = (data * data).mean(axis=0) - mean * mean
        return mean, np.sqrt(np.maximum(var, 0.0))

    def dump_text(self, path: str | os.PathLike) -> None:
        """Write the buffer as text, one sample per line."""
        np.savetxt(path, self.buffer, fmt="%f")

    def dump_binary(self, path: str | os.PathLike) -> None:
        """Write the buffer as raw native float32 values in sample-major order."""
        with open(path, "wb") as fh:
            fh.write(np.ascontiguousarray(self.buffer, dtype=np.float32).tobytes())

    def _allocate(self) -> None:
        if self.buffer.shape != (self.nsamples, self.nchans):
            self.buffer = np.zeros((self.nsamples, self.nchans), dtype=np.float32)

    def _release(self) -> None:
        self.buffer = np.zeros((0, self.nchans), dtype=np.float32)
"""Two-stage subband dedispersion of streamed filterbank blocks."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from pulsesift.databuffer import DataBuffer
from pulsesift.units import dmdelay

logger = logging.getLogger(__name__)


def _round_half_away(values) -> np.ndarray:
    """Round to the nearest integer, halves away from zero."""
    arr = np.asarray(values, dtype=np.float64)
    return np.where(arr >= 0, np.floor(arr + 0.5), np.ceil(arr - 0.5)).astype(np.int64)


def _round_scalar(value: float) -> int:
    return int(math.floor(value + 0.5)) if value >= 0 else int(math.ceil(value - 0.5))


@dataclass
class Subband:
    """Second dedispersion stage: dedisperses subband series to trial DMs.

    ``nsub`` groups of subbanded data, each holding ``nchans`` subbands, are
    dedispersed to ``ndm_per_sub`` trial DMs taken from ``vdm``.
    """

    ndump: int = 0
    noverlap: int = 0
    nchans: int = 0
    nsub: int = 0
    ndm_per_sub: int = 0
    nsamples: int = 0
    tsamp: float = 0.0
    vdm: np.ndarray = field(default_factory=lambda: np.zeros(0))
    frequencies: np.ndarray = field(default_factory=lambda: np.zeros(0))
    fcnt: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    rootname: str = ""
    counter: int = 0

    @property
    def ndm(self) -> int:
        """Total number of trial DMs."""
        return self.nsub * self.ndm_per_sub

    def prepare(self) -> None:
        """Compute the per-channel delays and allocate the work buffers."""
        self.vdm = np.asarray(self.vdm, dtype=np.float64)
        self.frequencies = np.asarray(self.frequencies, dtype=np.float64)
        if self.ndump < 1:
            raise ValueError("ndump must be positive")
        if not 0 <= self.noverlap <= self.ndump:
            raise ValueError("noverlap must lie between 0 and ndump")
        if self.frequencies.shape != (self.nchans,) or self.nchans < 1:
            raise ValueError(f"expected {self.nchans} frequencies")
        if self.vdm.shape != (self.ndm,) or self.ndm < 1:
            raise ValueError(f"expected {self.ndm} trial DMs")
        if self.nsamples < self.ndump:
            raise ValueError("nsamples must be at least ndump")

        fmax = float(self.frequencies.max())
        dms = self.vdm.reshape(self.nsub, 1, self.ndm_per_sub)
        freqs = self.frequencies.reshape(1, self.nchans, 1)
        self._delays = _round_half_away(dmdelay(dms, fmax, freqs) / self.tsamp)
        if self._delays.size and (
            self._delays.min() < 0 or self._delays.max() > self.nsamples - self.ndump
        ):
            raise ValueError("buffer is too short for the dispersion delays")

        nspace = self.nsamples - self.ndump
        self._buffer = np.zeros((self.nsub, self.nsamples, self.nchans), dtype=np.float32)
        self._bufferT = np.zeros((self.nsub, self.nchans, self.nsamples), dtype=np.float32)
        self.buffertim = np.zeros((self.ndm, self.ndump), dtype=np.float32)
        self.cachetim = np.zeros((self.ndm, self.noverlap), dtype=np.float32)
        self.cachesub = np.zeros(
            (self.nsub, self.nchans, self.noverlap + nspace), dtype=np.float32
        )

    def run(self, data) -> None:
        """Dedisperse one block laid out as (nsub, ndump, nchans)."""
        block = np.asarray(data, dtype=np.float32).reshape(
            self.nsub, self.ndump, self.nchans
        )
        nspace = self.nsamples - self.ndump
        self._buffer[:, nspace:, :] = block
        self._bufferT = np.ascontiguousarray(self._buffer.transpose(0, 2, 1))

        tim = np.zeros((self.nsub, self.ndm_per_sub, self.ndump), dtype=np.float32)
        steps = np.arange(self.ndump)
        groups = np.arange(self.nsub)[:, None, None]
        for j in range(self.nchans):
            idx = self._delays[:, j, :, None] + steps
            tim += self._bufferT[:, j, :][groups, idx]
        self.buffertim = tim.reshape(self.ndm, self.ndump)

        self._buffer[:, :nspace, :] = self._buffer[:, self.ndump :, :].copy()
        self.counter += self.ndump

    def cache(self) -> None:
        """Keep the tail of the current block for overlapped retrieval later."""
        start = self.ndump - self.noverlap
        self.cachetim = self.buffertim[:, start:].copy()
        self.cachesub = self._bufferT[:, :, start:].copy()

    def _check_idm(self, idm: int) -> None:
        if not 0 <= idm < self.ndm:
            raise IndexError(f"DM index {idm} out of range 0..{self.ndm - 1}")

    def get_subdata(self, idm: int, overlapped: bool = False) -> np.ndarray:
        """Subband data aligned at trial ``idm``, shaped (nchans, length)."""
        self._check_idm(idm)
        isub, isubdm = divmod(idm, self.ndm_per_sub)
        delays = self._delays[isub, :, isubdm][:, None]
        rows = np.arange(self.nchans)[:, None]
        tail = self._bufferT[isub][rows, delays + np.arange(self.ndump)]
        if not overlapped:
            return tail
        head = self.cachesub[isub][rows, delays + np.arange(self.noverlap)]
        return np.concatenate([head, tail], axis=1)

    def get_timdata(self, idm: int, overlapped: bool = False) -> np.ndarray:
        """Dedispersed time series of trial ``idm``."""
        self._check_idm(idm)
        if not overlapped:
            return self.buffertim[idm].copy()
        return np.concatenate([self.cachetim[idm], self.buffertim[idm]])


class SubbandDedispersion:
    """Dedisperse a stream of blocks to ``ndm`` trial DMs through subbands."""

    def __init__(
        self,
        dms: float = 0.0,
        ddm: float = 0.0,
        ndm: int = 0,
        ndump: int = 0,
        overlap: float = 0.0,
    ) -> None:
        self.rootname = ""
        self.dms = float(dms)
        self.ddm = float(ddm)
        self.ndm = int(ndm)
        self.ndump = int(ndump)
        self.overlap = float(overlap)
        self.mean = 0.0
        self.var = 0.0
        self.counter = 0
        self.offset = 0
        self.noverlap = 0
        self.nsubband = 0
        self.nchans = 0
        self.nsamples = 0
        self.tsamp = 0.0
        self.nsub = 0
        self.ntot = 0
        self.frequencies = np.zeros(0)
        self.fmap = np.zeros(0, dtype=np.int64)
        self.fcnt = np.zeros(0, dtype=np.int64)
        self.frefsub = np.zeros(0)
        self.mxdelayn = np.zeros((0, 0), dtype=np.int64)
        self.sub = Subband()
        self._prepared = False

    def _map_subbands(self, fmin: float, fmax: float) -> None:
        freqs = self.frequencies
        df2 = abs(1.0 / (fmin * fmin) - 1.0 / (fmax * fmax)) / self.nsubband
        fref = float(freqs[0])
        self.fmap = np.zeros(self.nchans, dtype=np.int64)
        self.fcnt = np.zeros(self.nsubband, dtype=np.int64)
        self.frefsub = np.zeros(self.nsubband, dtype=np.float64)

        m = 0
        for i in range(self.nsubband):
            while m < self.nchans:
                fc = float(freqs[m])
                if abs(1.0 / (fc * fc) - 1.0 / (fref * fref)) / (i + 1) > df2:
                    break
                self.fmap[m] = i
                self.fcnt[i] += 1
                self.frefsub[i] = max(fc, self.frefsub[i])
                m += 1
        empty = np.flatnonzero(self.fcnt == 0)
        if empty.size:
            raise ValueError(f"subband {int(empty[0])} holds no channels")

    def prepare(self, databuffer: DataBuffer) -> None:
        """Plan both dedispersion stages for blocks shaped like ``databuffer``."""
        if self.ndm < 1 or self.ndump < 1:
            raise ValueError("ndm and ndump must be positive")
        self.nchans = databuffer.nchans
        self.tsamp = float(databuffer.tsamp)
        self.frequencies = np.array(databuffer.frequencies, dtype=np.float64)
        if self.nchans < 1 or self.tsamp <= 0:
            raise ValueError("block needs channels and a positive sampling time")

        self.nsubband = _round_scalar(math.sqrt(self.nchans))
        fmin = float(self.frequencies.min())
        fmax = float(self.frequencies.max())
        self._map_subbands(fmin, fmax)

        maxsubdelay = math.ceil(
            dmdelay(self.dms + self.ndm * self.ddm, fmax, fmin) / self.nsubband / self.tsamp
        )
        self.nsamples = maxsubdelay + self.ndump
        self._buffer = np.zeros((self.nsamples, self.nchans), dtype=np.float32)

        ddm_sub = self.ddm * self.nsubband
        self.nsub = math.ceil(self.ndm / self.nsubband)
        self.noverlap = int(self.overlap * self.ndump)

        vdm = self.dms + np.arange(self.nsub * self.nsubband) * self.ddm
        maxdelay = math.ceil(dmdelay(float(vdm.max()), fmax, fmin) / self.tsamp)
        self.sub = Subband(
            ndump=self.ndump,
            noverlap=self.noverlap,
            nchans=self.nsubband,
            nsub=self.nsub,
            ndm_per_sub=self.nsubband,
            nsamples=maxdelay + self.ndump,
            tsamp=self.tsamp,
            vdm=vdm,
            frequencies=self.frefsub.copy(),
            fcnt=self.fcnt.copy(),
            rootname=self.rootname,
        )
        self.sub.prepare()

        subdms = self.dms + np.arange(self.nsub) * ddm_sub
        fref = self.frefsub[self.fmap][:, None]
        self.mxdelayn = _round_half_away(
            dmdelay(subdms[None, :], fref, self.frequencies[:, None]) / self.tsamp
        )

        self.offset = (self.nsamples - self.ndump) + (
            self.sub.nsamples - self.sub.ndump
        ) + self.sub.noverlap
        self._prepared = True

        logger.info(
            "Subband Dedispersion Info: nsamples=%d ndump=%d nchans=%d tsamp=%g "
            "minimum freq=%g maximum freq=%g nsubband=%d DM start=%g DM step=%g "
            "DM end=%g number of DM=%d maximum delay=%g overlap=%g",
            self.nsamples,
            self.ndump,
            self.nchans,
            self.tsamp,
            fmin,
            fmax,
            self.nsubband,
            self.dms,
            self.ddm,
            self.dms + self.ddm * self.ndm,
            self.ndm,
            maxdelay * self.tsamp,
            self.overlap,
        )

    def run(self, databuffer: DataBuffer, ns: int) -> None:
        """Dedisperse the next ``ns`` samples of ``databuffer``; ``ns`` must be ndump."""
        if not self._prepared:
            raise RuntimeError("prepare must be called before run")
        if ns != self.ndump:
            raise ValueError(f"block length {ns} differs from ndump {self.ndump}")

        logger.debug(
            "perform dedispersion on data block (%d, %d)", self.ndump, self.nchans
        )
        nspace = self.nsamples - ns
        self._buffer[nspace:, :] = databuffer.buffer[:ns, : self.nchans]

        databuffer.isbusy = False
        if databuffer.closable:
            databuffer._release()

        bufferT = np.ascontiguousarray(self._buffer.T)
        buffersub = np.zeros((self.nsubband, self.nsub, self.ndump), dtype=np.float32)
        steps = np.arange(self.ndump)
        for j in range(self.nchans):
            idx = self.mxdelayn[j][:, None] + steps
            buffersub[self.fmap[j]] += bufferT[j][idx]

        self.sub.run(buffersub.transpose(1, 2, 0))

        self._buffer[:nspace, :] = self._buffer[ns:, :].copy()
        self.counter += self.ndump
        logger.debug("finished")

    def get_subdata(self, idm: int, overlapped: bool = False) -> np.ndarray:
        """Subband data aligned at trial ``idm``, shaped (nsubband, length)."""
        return self.sub.get_subdata(idm, overlapped)

    def get_timdata(self, idm: int, overlapped: bool = False) -> np.ndarray:
        """Dedispersed time series of trial ``idm``."""
        return self.sub.get_timdata(idm, overlapped)
"""Tree-structured Hough transform over the rows of a 2-D array."""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

ShiftFunction = Callable[[int, int, int], int]


def _log2_exact(nrow: int) -> int:
    if nrow < 1 or nrow & (nrow - 1):
        raise ValueError(f"nrow must be a positive power of two, got {nrow}")
    return nrow.bit_length() - 1


def shift_plan(
    nrow: int, ncol: int, get_shift: ShiftFunction
) -> tuple[list[np.ndarray], list[int]]:
    """Build the per-level column shifts and the output row ordering.

    ``get_shift(x0, x1, h)`` gives the shift, in columns, between input rows
    ``x0`` and ``x1`` for the trial ``h``.  The result holds one array of
    ``nrow`` shifts per level (reduced modulo ``ncol``) and the trial index
    that each row of the transform ends up holding.
    """
    levels = _log2_exact(nrow)
    if ncol < 1:
        raise ValueError(f"ncol must be positive, got {ncol}")

    hrange = [0] * nrow
    xrange_ = list(range(nrow))
    plan: list[np.ndarray] = []

    nrow_tmp = nrow
    nsub = 1
    for _ in range(levels):
        half = nrow_tmp // 2
        for k in range(nsub):
            hrange[k + nsub] = hrange[k] + half

        shifts = np.empty(nrow, dtype=np.int64)
        for j in range(half):
            x0, x1 = xrange_[2 * j], xrange_[2 * j + 1]
            for k in range(2 * nsub):
                shifts[j * 2 * nsub + k] = int(get_shift(x0, x1, hrange[k])) % ncol
        plan.append(shifts)

        xrange_ = xrange_[::2]
        nsub *= 2
        nrow_tmp = half

    return plan, hrange


def hough_transform(
    data: Sequence[float] | np.ndarray,
    nrow: int,
    ncol: int,
    get_shift: ShiftFunction,
) -> np.ndarray:
    """Sum rows of ``data`` along shifted tracks; returns an (nrow, ncol) array.

    Row ``h`` of the result is the sum of all input rows, each cyclically
    shifted according to ``get_shift`` for trial ``h``.
    """
    levels = _log2_exact(nrow)
    arr = np.asarray(data, dtype=np.float32)
    if arr.size != nrow * ncol:
        raise ValueError(f"expected {nrow * ncol} values, got {arr.size}")

    plan, hrange = shift_plan(nrow, ncol, get_shift)
    temp = arr.reshape(nrow, ncol).copy()
    cols = np.arange(ncol)

    for depth in range(levels - 1, -1, -1):
        nblock = 1 << depth
        nsub = nrow >> (depth + 1)
        blocks = temp.reshape(nblock, 2, nsub, ncol)
        delays = plan[levels - 1 - depth].reshape(nblock, 2, nsub)

        first = blocks[:, 0]
        second = blocks[:, 1]
        idx0 = (cols + delays[:, 0, :, None]) % ncol
        idx1 = (cols + delays[:, 1, :, None]) % ncol
        cache0 = np.take_along_axis(second, idx0, axis=-1)
        cache1 = np.take_along_axis(second, idx1, axis=-1)

        merged = np.empty_like(blocks)
        merged[:, 0] = first + cache0
        merged[:, 1] = first + cache1
        temp = merged.reshape(nrow, ncol)

    out = np.zeros_like(temp)
    out[hrange] = temp
    return out
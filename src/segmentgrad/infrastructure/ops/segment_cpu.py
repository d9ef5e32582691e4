"""
CPU reference kernels for segment reductions (NumPy backend).

These functions operate on plain ndarrays and are the numerical ground
truth for the segment operators:

- `unsorted_segment_sum_cpu`: grouped sum along axis 0
- `gather_cpu`: selection of slices along an axis by index

Design notes
------------
- The scatter-add uses `np.add.at` so repeated ids accumulate.
- Kernels validate only what is needed to stay in bounds. Ids outside
  `[0, num_segments)` are dropped by the kernel; the operator layer has
  already rejected ids `>= num_segments`.
"""

from __future__ import annotations

import numpy as np


def unsorted_segment_sum_cpu(
    x: np.ndarray, segment_ids: np.ndarray, num_segments: int
) -> np.ndarray:
    """
    Sum the axis-0 slices of `x` grouped by `segment_ids`.

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, ...).
    segment_ids : np.ndarray
        Integer array of shape (N,). Negative ids (and ids outside
        `[0, num_segments)`) contribute to no output slot.
    num_segments : int
        Size of the output's leading dimension.

    Returns
    -------
    np.ndarray
        Array of shape (num_segments, ...) with the dtype of `x`; slot `s`
        holds the sum of every `x[i]` with `segment_ids[i] == s`, or zeros.
    """
    x = np.asarray(x)
    ids = np.asarray(segment_ids).astype(np.int64, copy=False).reshape(-1)

    out = np.zeros((int(num_segments),) + x.shape[1:], dtype=x.dtype)

    keep = (ids >= 0) & (ids < num_segments)
    if np.any(keep):
        np.add.at(out, ids[keep], x[keep])
    return out


def gather_cpu(x: np.ndarray, indices: np.ndarray, axis: int = 0) -> np.ndarray:
    """
    Select slices of `x` along `axis`.

    For a 1-D `indices`, `out.shape[axis] == len(indices)` and the `i`-th
    slice of `out` along `axis` is the `indices[i]`-th slice of `x`.

    Raises
    ------
    IndexError
        If an index is outside `[0, x.shape[axis])`. Negative indices are
        rejected rather than wrapped.
    """
    x = np.asarray(x)
    idx = np.asarray(indices).astype(np.int64, copy=False).reshape(-1)
    if idx.size and (idx.min() < 0 or idx.max() >= x.shape[axis]):
        raise IndexError(
            f"gather index out of range for axis {axis} with size {x.shape[axis]}"
        )
    return np.take(x, idx, axis=axis)

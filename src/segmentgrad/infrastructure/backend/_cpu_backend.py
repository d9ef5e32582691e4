"""
NumPy implementation of the `IBackend` kernel library.

Every method reads its inputs through `Tensor.to_numpy()` (a read-only
view), computes a fresh ndarray and wraps it into a new CPU tensor that
does not track gradients. The engine decides afterwards whether the output
joins the autograd graph.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from ..ops.segment_cpu import gather_cpu, unsorted_segment_sum_cpu
from ..tensor._tensor import Tensor
from ...domain.device._device import Device


class CpuBackend:
    """Dense CPU kernels backed by NumPy."""

    name = "cpu"

    @staticmethod
    def _wrap(arr: np.ndarray, device: Device) -> Tensor:
        arr = np.asarray(arr)
        return Tensor.from_numpy(arr, device=device, dtype=arr.dtype)

    # -- segment reduction ------------------------------------------------
    def unsorted_segment_sum(
        self, x: Tensor, segment_ids: Tensor, num_segments: int
    ) -> Tensor:
        out = unsorted_segment_sum_cpu(
            x.to_numpy(), segment_ids.to_numpy(), int(num_segments)
        )
        return self._wrap(out, x.device)

    # -- layout -----------------------------------------------------------
    def transpose(self, x: Tensor, perm: Sequence[int]) -> Tensor:
        out = np.ascontiguousarray(np.transpose(x.to_numpy(), tuple(perm)))
        return self._wrap(out, x.device)

    def expand_dims(self, x: Tensor, axis: int) -> Tensor:
        return self._wrap(np.expand_dims(x.to_numpy(), axis), x.device)

    def reshape(self, x: Tensor, shape: tuple[int, ...]) -> Tensor:
        return self._wrap(np.reshape(x.to_numpy(), shape), x.device)

    def broadcast_to(self, x: Tensor, shape: tuple[int, ...]) -> Tensor:
        out = np.ascontiguousarray(np.broadcast_to(x.to_numpy(), shape))
        return self._wrap(out, x.device)

    # -- indexing ---------------------------------------------------------
    def gather(self, x: Tensor, indices: Tensor, axis: int) -> Tensor:
        return self._wrap(gather_cpu(x.to_numpy(), indices.to_numpy(), axis), x.device)

    # -- elementwise ------------------------------------------------------
    def maximum(self, a: Tensor, b: Tensor) -> Tensor:
        return self._wrap(np.maximum(a.to_numpy(), b.to_numpy()), a.device)

    def greater_equal(self, a: Tensor, b: Tensor) -> Tensor:
        return self._wrap(np.greater_equal(a.to_numpy(), b.to_numpy()), a.device)

    def logical_and(self, a: Tensor, b: Tensor) -> Tensor:
        return self._wrap(np.logical_and(a.to_numpy(), b.to_numpy()), a.device)

    def where(self, mask: Tensor, a: Tensor, b: Tensor) -> Tensor:
        out = np.where(mask.to_numpy(), a.to_numpy(), b.to_numpy())
        return self._wrap(out.astype(np.result_type(a.dtype, b.dtype), copy=False), a.device)

    # -- construction -----------------------------------------------------
    def zeros_like(self, x: Tensor, dtype: Optional[Any] = None) -> Tensor:
        dt = x.dtype if dtype is None else np.dtype(dtype)
        return Tensor.zeros(shape=x.shape, device=x.device, dtype=dt)

    def ones_like(self, x: Tensor, dtype: Optional[Any] = None) -> Tensor:
        dt = x.dtype if dtype is None else np.dtype(dtype)
        return Tensor.ones(shape=x.shape, device=x.device, dtype=dt)

    def full(
        self, shape: tuple[int, ...], value: Any, dtype: Any, device: Device
    ) -> Tensor:
        return self._wrap(np.full(shape, value, dtype=np.dtype(dtype)), device)

    # -- reduction --------------------------------------------------------
    def sum(self, x: Tensor) -> Tensor:
        return self._wrap(np.asarray(np.sum(x.to_numpy()), dtype=x.dtype), x.device)

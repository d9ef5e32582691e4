"""
Kernel backend interface.

An `IBackend` performs the actual numeric work for one device family.
Operators never touch storage directly: they hand a kernel callable to the
engine, which resolves the backend for the inputs' device and calls the
kernel with it. Backends receive tensors and return new tensors on the same
device; they never mutate their inputs and never record gradients.

Argument validation is the operator layer's responsibility. Backends may
assume shapes, dtypes and axes have already been checked.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from ._tensor import ITensor


@runtime_checkable
class IBackend(Protocol):
    """Device kernel library consumed by the operator layer."""

    name: str

    # -- segment reduction ------------------------------------------------
    def unsorted_segment_sum(
        self, x: ITensor, segment_ids: ITensor, num_segments: int
    ) -> ITensor:
        """
        Sum the slices of `x` along axis 0 grouped by `segment_ids`.

        Slot `s` of the result is the sum of every `x[i]` with
        `segment_ids[i] == s`, and zero when no slice maps to `s`.
        Negative ids contribute to no slot.
        """
        ...

    # -- layout -----------------------------------------------------------
    def transpose(self, x: ITensor, perm: Sequence[int]) -> ITensor: ...

    def expand_dims(self, x: ITensor, axis: int) -> ITensor: ...

    def reshape(self, x: ITensor, shape: tuple[int, ...]) -> ITensor: ...

    def broadcast_to(self, x: ITensor, shape: tuple[int, ...]) -> ITensor: ...

    # -- indexing ---------------------------------------------------------
    def gather(self, x: ITensor, indices: ITensor, axis: int) -> ITensor: ...

    # -- elementwise ------------------------------------------------------
    def maximum(self, a: ITensor, b: ITensor) -> ITensor: ...

    def greater_equal(self, a: ITensor, b: ITensor) -> ITensor: ...

    def logical_and(self, a: ITensor, b: ITensor) -> ITensor: ...

    def where(self, mask: ITensor, a: ITensor, b: ITensor) -> ITensor: ...

    # -- construction -----------------------------------------------------
    def zeros_like(self, x: ITensor, dtype: Optional[Any] = None) -> ITensor: ...

    def ones_like(self, x: ITensor, dtype: Optional[Any] = None) -> ITensor: ...

    def full(
        self, shape: tuple[int, ...], value: Any, dtype: Any, device: Any
    ) -> ITensor: ...

    # -- reduction --------------------------------------------------------
    def sum(self, x: ITensor) -> ITensor: ...

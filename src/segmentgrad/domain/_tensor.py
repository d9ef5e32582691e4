"""
Tensor interface definitions.

`ITensor` is the backend-agnostic contract every tensor implementation
satisfies. Operators, backends and the differentiation engine are written
against this protocol so that the numpy-backed `Tensor` is one
implementation among possibly several.

Notes
-----
Tensors are immutable from the point of view of every operator: an op
never writes into its inputs and always returns a fresh tensor. Only the
autograd fields (`grad`, the attached context) change after construction.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from .device._device_protocol import DeviceLike


@runtime_checkable
class ITensor(Protocol):
    """
    Tensor interface.

    An `ITensor` is a typed, multi-dimensional numeric container with a
    shape, a device placement and optional autograd state.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """Ordered sequence of non-negative dimension sizes."""
        ...

    @property
    def rank(self) -> int:
        """Number of dimensions (`len(shape)`)."""
        ...

    @property
    def dtype(self) -> Any:
        """Element type of the tensor."""
        ...

    @property
    def device(self) -> DeviceLike:
        """Device on which the tensor resides."""
        ...

    @property
    def requires_grad(self) -> bool:
        """Whether gradients should be tracked for this tensor."""
        ...

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None: ...

    @property
    def grad(self) -> Optional["ITensor"]:
        """Accumulated gradient, or None if no backward pass reached it."""
        ...

    def zero_grad(self) -> None:
        """Clear the stored gradient."""
        ...

    def numel(self) -> int:
        """Total number of elements."""
        ...

    def to_numpy(self) -> Any:
        """
        Return a read-only host array holding the tensor's values.

        Raises
        ------
        DeviceNotSupportedError
            If the tensor's device cannot be read from the host.
        """
        ...

    def backward(self, grad_out: Optional["ITensor"] = None) -> None:
        """
        Backpropagate from this tensor through the recorded graph.

        Parameters
        ----------
        grad_out : Optional[ITensor]
            Gradient with respect to this tensor. May be omitted only for
            scalar tensors, in which case it defaults to 1.
        """
        ...

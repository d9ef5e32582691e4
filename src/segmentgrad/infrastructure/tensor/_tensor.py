"""
Concrete Tensor implementation (NumPy backend).

This module provides the `Tensor` type that satisfies the domain-level
`ITensor` protocol. CPU tensors are backed by read-only NumPy arrays;
CUDA tensors can be described (shape, dtype, device) but hold no storage,
since no CUDA backend is registered.

Design notes
------------
- Storage is never written after construction by any operator. Every op
  returns a new tensor; `copy_from_numpy` replaces storage wholesale and is
  meant for initialisation only.
- Autograd is expressed by attaching an optional `Context` to outputs. The
  engine attaches it; `Tensor.backward` traverses the `Context` links in
  reverse topological order.
"""

from __future__ import annotations

from typing import Any, Optional, Union

import numpy as np

from ...domain._tensor import ITensor
from ...domain.device._device import Device
from ...domain._errors import (
    DeviceMismatchError,
    DeviceNotSupportedError,
    MissingTensorError,
    ShapeMismatchError,
)
from ._tensor_context import Context
from .mixins.segment import TensorMixinSegment

Number = Union[int, float]


class Tensor(TensorMixinSegment, ITensor):
    """
    Concrete tensor (NumPy CPU backend).

    Parameters
    ----------
    shape : tuple[int, ...]
        Tensor shape.
    device : Device
        Target device placement.
    requires_grad : bool, optional
        Whether this tensor should accumulate gradients during backprop.
        Defaults to False.
    ctx : Optional[Context], optional
        Backward context. Typically set by the engine. Defaults to None.
    dtype : np.dtype, optional
        Element dtype. Defaults to np.float32.

    Notes
    -----
    - For CPU tensors, `_data` is a read-only ndarray of dtype `self._dtype`
      initialised to zeros.
    - For CUDA tensors, `_data` is None.
    - Gradients are stored as another `Tensor` in `_grad`.
    """

    def __initialize_data(self) -> None:
        """
        Allocate zero-initialised storage for CPU tensors.

        Raises
        ------
        ValueError
            If the device type is unsupported.
        """
        d = self._device

        is_cpu = getattr(d, "is_cpu", None)
        if callable(is_cpu) and is_cpu():
            data = np.zeros(self._shape, dtype=self._dtype)
            data.flags.writeable = False
            self._data = data
            return

        is_cuda = getattr(d, "is_cuda", None)
        if callable(is_cuda) and is_cuda():
            self._data = None
            return

        raise ValueError(f"Unsupported device type: {type(d)!r} value={d!r}")

    def __init__(
        self,
        shape: tuple[int, ...],
        device: Device,
        *,
        requires_grad: bool = False,
        ctx: Optional[Context] = None,
        dtype: Any = np.float32,
    ) -> None:
        self._shape = tuple(int(d) for d in shape)
        self._device = device
        self._dtype = np.dtype(dtype)
        self.__initialize_data()

        self._requires_grad: bool = bool(requires_grad)
        self._grad: Optional["Tensor"] = None
        self._ctx: Optional[Context] = ctx

    def __repr__(self) -> str:
        return (
            f"Tensor(shape={self._shape}, device={self._device}, "
            f"dtype={self._dtype}, requires_grad={self._requires_grad})"
        )

    # ----------------------------
    # Factories
    # ----------------------------
    @staticmethod
    def from_numpy(
        arr: Any,
        *,
        device: Optional[Device] = None,
        requires_grad: bool = False,
        dtype: Any = None,
    ) -> "Tensor":
        """
        Create a tensor holding a copy of an array-like value.

        Parameters
        ----------
        arr : array-like
            Source values.
        device : Device, optional
            Target device. Defaults to CPU.
        requires_grad : bool, optional
            Whether the tensor is a differentiable leaf.
        dtype : optional
            Element dtype. If omitted, floating inputs become float32 and
            every other dtype is preserved.

        Returns
        -------
        Tensor
            New tensor with the same shape as `arr`.
        """
        device = Device("cpu") if device is None else device
        a = np.asarray(arr)
        if dtype is None:
            dtype = np.float32 if np.issubdtype(a.dtype, np.floating) else a.dtype
        t = Tensor(a.shape, device, requires_grad=requires_grad, dtype=dtype)
        t.copy_from_numpy(a)
        return t

    @staticmethod
    def zeros(
        *,
        shape: tuple[int, ...],
        device: Device,
        requires_grad: bool = False,
        dtype: Any = np.float32,
    ) -> "Tensor":
        """Create a zero-filled tensor."""
        return Tensor(shape, device, requires_grad=requires_grad, dtype=dtype)

    @staticmethod
    def ones(
        *,
        shape: tuple[int, ...],
        device: Device,
        requires_grad: bool = False,
        dtype: Any = np.float32,
    ) -> "Tensor":
        """Create a tensor filled with ones."""
        out = Tensor(shape, device, requires_grad=requires_grad, dtype=dtype)
        if not device.is_cpu():
            out._raise_device_not_supported("ones")
        out.copy_from_numpy(np.ones(out.shape, dtype=out.dtype))
        return out

    # ----------------------------
    # Properties
    # ----------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def rank(self) -> int:
        return len(self._shape)

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def device(self) -> Device:
        return self._device

    @property
    def requires_grad(self) -> bool:
        return self._requires_grad

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None:
        self._requires_grad = bool(value)

    @property
    def grad(self) -> Optional["Tensor"]:
        return self._grad

    def zero_grad(self) -> None:
        """Clear the stored gradient."""
        self._grad = None

    def _set_ctx(self, ctx: Optional[Context]) -> None:
        """Attach (or detach with None) the backward context. Engine hook."""
        self._ctx = ctx

    def _get_ctx(self) -> Optional[Context]:
        """Return the attached backward context, if any."""
        return self._ctx

    def numel(self) -> int:
        """
        Return the total number of elements in the tensor.

        Returns
        -------
        int
            Product of all dimensions in the tensor shape (1 for scalars).
        """
        n = 1
        for d in self._shape:
            n *= int(d)
        return n

    # ----------------------------
    # Internal helpers
    # ----------------------------
    def _raise_device_not_supported(self, op: str) -> "None":
        """
        Raise a standardized 'device not supported' error for an operation.

        Raises
        ------
        DeviceNotSupportedError
            Always.
        """
        raise DeviceNotSupportedError(op=op, device=str(self._device))

    # ----------------------------
    # Host interop
    # ----------------------------
    def to_numpy(self) -> np.ndarray:
        """
        Return the tensor values as a read-only NumPy array.

        Raises
        ------
        DeviceNotSupportedError
            If the tensor does not live on the CPU.
        """
        if not self._device.is_cpu():
            self._raise_device_not_supported("to_numpy")
        return self._data

    def copy_from_numpy(self, arr: Any) -> None:
        """
        Replace this tensor's storage with a copy of `arr`.

        Intended for initialising freshly created tensors; operators never
        call it on their inputs.

        Parameters
        ----------
        arr : array-like
            Values to copy. Must match `self.shape`.

        Raises
        ------
        ShapeMismatchError
            If `arr` has a different shape.
        DeviceNotSupportedError
            If the tensor does not live on the CPU.
        """
        if not self._device.is_cpu():
            self._raise_device_not_supported("copy_from_numpy")
        a = np.asarray(arr)
        if a.shape != self._shape:
            raise ShapeMismatchError(
                f"copy_from_numpy shape mismatch: expected {self._shape}, got {a.shape}",
                expected=self._shape,
                got=a.shape,
            )
        data = np.array(a, dtype=self._dtype, copy=True)
        data.flags.writeable = False
        self._data = data

    def item(self) -> Any:
        """Return the single value of a one-element tensor as a Python scalar."""
        if self.numel() != 1:
            raise ShapeMismatchError(
                f"item() requires a tensor with one element, got shape {self._shape}",
                got=self._shape,
            )
        return self.to_numpy().reshape(()).item()

    # ----------------------------
    # Reductions
    # ----------------------------
    def sum(self) -> "Tensor":
        """
        Sum every element into a scalar tensor (differentiable).

        Backward rule: the upstream scalar gradient is broadcast to every
        input element.
        """
        from ..ops.array_ops import reduce_sum

        return reduce_sum(self)

    # ----------------------------
    # Autograd
    # ----------------------------
    def _accumulate_grad_(self, g: "Tensor") -> None:
        """Accumulate `g` into `self.grad` (CPU-only)."""
        if not self.device.is_cpu():
            self._raise_device_not_supported("accumulate_grad")

        g0 = self._detach_no_grad(g)

        if self._grad is None:
            self._grad = g0
            return

        if self._grad.shape != g0.shape:
            raise ShapeMismatchError(
                f"Grad shape mismatch: {self._grad.shape} vs {g0.shape}",
                expected=self._grad.shape,
                got=g0.shape,
            )
        self._grad = self._add_no_grad(self._grad, g0)

    @staticmethod
    def _detach_no_grad(t: "Tensor") -> "Tensor":
        """Return a copy of `t` that does not track gradients and has no ctx."""
        if not t.device.is_cpu():
            t._raise_device_not_supported("detach_no_grad")
        out = Tensor(t.shape, t.device, requires_grad=False, ctx=None, dtype=t.dtype)
        out.copy_from_numpy(t.to_numpy())
        return out

    @staticmethod
    def _add_no_grad(a: "Tensor", b: "Tensor") -> "Tensor":
        """Add two tensors without creating autograd history."""
        if a.device != b.device:
            raise DeviceMismatchError(str(a.device), str(b.device))
        if a.shape != b.shape:
            raise ShapeMismatchError(
                f"Shape mismatch in _add_no_grad: {a.shape} vs {b.shape}",
                expected=a.shape,
                got=b.shape,
            )
        if not a.device.is_cpu():
            a._raise_device_not_supported("add_no_grad")
        out = Tensor(a.shape, a.device, requires_grad=False, ctx=None, dtype=a.dtype)
        out.copy_from_numpy(a.to_numpy() + b.to_numpy())
        return out

    def backward(self, grad_out: Optional["Tensor"] = None) -> None:
        """
        Backpropagate gradients from this tensor through the autograd graph.

        Parameters
        ----------
        grad_out : Optional[Tensor], optional
            Gradient w.r.t. this tensor. If omitted, this tensor must be a
            scalar and the gradient is assumed to be 1.

        Raises
        ------
        ShapeMismatchError
            If `grad_out` is omitted for a non-scalar tensor, if its shape
            differs from this tensor's, or if a backward function returns a
            gradient whose shape differs from its parent's.
        MissingTensorError
            If `grad_out` is given but is not a Tensor.
        DeviceMismatchError
            If `grad_out` lives on a different device.

        Notes
        -----
        - Gradients are accumulated into `.grad` of every tensor in the graph
          that has `requires_grad=True` and no context (the leaves).
        - Each recorded backward function runs at most once per call, and
          only if some gradient reaches its output.
        """
        if not self.device.is_cpu():
            self._raise_device_not_supported("backward")

        # Seed gradient
        if grad_out is None:
            if self.shape != ():
                raise ShapeMismatchError(
                    "grad_out must be provided for non-scalar tensors. "
                    f"Got shape={self.shape}.",
                    got=self.shape,
                )
            seed_dtype = self.dtype if np.issubdtype(self.dtype, np.floating) else np.float32
            grad_out = Tensor((), self.device, requires_grad=False, dtype=seed_dtype)
            grad_out.copy_from_numpy(np.array(1.0, dtype=seed_dtype))
        else:
            if not isinstance(grad_out, Tensor):
                raise MissingTensorError("grad_out", "backward", grad_out)
            if grad_out.shape != self.shape:
                raise ShapeMismatchError(
                    f"grad_out shape mismatch: expected {self.shape}, got {grad_out.shape}",
                    expected=self.shape,
                    got=grad_out.shape,
                )
            if grad_out.device != self.device:
                raise DeviceMismatchError(str(self.device), str(grad_out.device))

        # Build reverse topological order of nodes reachable from `self`
        topo: list[Tensor] = []
        visited: set[int] = set()

        def dfs(t: "Tensor") -> None:
            tid = id(t)
            if tid in visited:
                return
            visited.add(tid)

            ctx = t._get_ctx()
            if ctx is not None:
                for p in ctx.parents:
                    dfs(p)

            topo.append(t)

        dfs(self)

        nodes: dict[int, Tensor] = {id(t): t for t in topo}
        grads: dict[int, Tensor] = {id(self): grad_out}

        for t in reversed(topo):
            ctx = t._get_ctx()
            if ctx is None:
                continue

            grad_t = grads.get(id(t))
            if grad_t is None:
                # No gradient flowing to this node; skip
                continue

            parent_grads = ctx.backward_fn(grad_t)
            if len(parent_grads) != len(ctx.parents):
                raise RuntimeError(
                    "backward_fn must return one grad per parent. "
                    f"Got {len(parent_grads)} grads for {len(ctx.parents)} parents."
                )

            for parent, g in zip(ctx.parents, parent_grads):
                if g is None:
                    continue
                if not isinstance(g, Tensor):
                    raise TypeError(
                        f"backward_fn must return Tensor or None, got {type(g)!r}"
                    )
                if g.device != parent.device:
                    raise DeviceMismatchError(str(parent.device), str(g.device))
                if g.shape != parent.shape:
                    raise ShapeMismatchError(
                        f"Gradient shape mismatch for parent of '{ctx.op_name}': "
                        f"expected {parent.shape}, got {g.shape}",
                        expected=parent.shape,
                        got=g.shape,
                    )

                pid = id(parent)
                if pid in grads:
                    grads[pid] = self._add_no_grad(grads[pid], g)
                else:
                    grads[pid] = self._detach_no_grad(g)

        # Write accumulated grads into leaf tensors that require grad
        for tid, g in grads.items():
            t = nodes[tid]
            if t.requires_grad and t._get_ctx() is None:
                t._accumulate_grad_(g)

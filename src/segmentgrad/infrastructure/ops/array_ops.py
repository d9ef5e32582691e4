"""
Primitive array operations with autograd support.

This module is the primitive op library the segment operators are built
from. Each public function:

- validates its arguments (raising before any dispatch),
- hands a kernel to `ENGINE.run_kernel`, which picks the backend for the
  inputs' device,
- registers a backward rule when the op is differentiable.

Differentiable ops are expressed as `Function` subclasses:

- `TransposeFn`   : arbitrary axis permutation; backward transposes back
- `GatherFn`      : slice selection; backward scatter-adds with
                    `unsorted_segment_sum`
- `WhereFn`       : masked select; backward routes the gradient by mask
- `ExpandDimsFn`  : inserts a unit axis; backward reshapes back
- `SumFn`         : full reduction; backward broadcasts

`maximum`, `greater_equal`, `logical_and`, `broadcast_to`, `zeros_like`,
`ones_like` and `scalar` never record gradients.

Binary elementwise ops broadcast NumPy-style.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

import numpy as np

from ...domain._errors import (
    AxisOutOfRangeError,
    MissingTensorError,
    SegmentIdsDtypeError,
    ShapeMismatchError,
    ValidationError,
)
from ...domain._function import Function
from ...domain.device._device import Device
from ..backend import get_backend
from ..engine import ENGINE
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import Context
from .axis_util import get_undo_axes_permutation, normalize_axis


# ---------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------
def _require_tensor(x: Any, name: str, op: str) -> None:
    if not isinstance(x, Tensor):
        raise MissingTensorError(name, op, x)


def _require_index_dtype(t: Tensor, op: str) -> None:
    if not np.issubdtype(t.dtype, np.signedinteger):
        raise SegmentIdsDtypeError(t.dtype, op)


def _require_1d(t: Tensor, name: str, op: str) -> None:
    if t.rank != 1:
        raise ShapeMismatchError(
            f"'{op}' expects '{name}' to be 1-D, got shape {t.shape}", got=t.shape
        )


def _broadcast_shape(op: str, *shapes: tuple[int, ...]) -> tuple[int, ...]:
    try:
        return tuple(np.broadcast_shapes(*shapes))
    except ValueError as e:
        raise ShapeMismatchError(
            f"'{op}': shapes {list(shapes)} are not broadcast-compatible"
        ) from e


# ---------------------------------------------------------------------
# transpose
# ---------------------------------------------------------------------
class TransposeFn(Function):
    """
    Permute the dimensions of a tensor.

    Forward:  out = transpose(x, perm)
    Backward: dx  = transpose(grad_out, inverse(perm))
    """

    @staticmethod
    def forward(backend, x: Tensor, perm: Sequence[int]) -> Tensor:
        return backend.transpose(x, perm)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Mapping[str, Optional[Tensor]]:
        undo = get_undo_axes_permutation(ctx.saved_meta["perm"])
        return {"x": transpose(grad_out, undo)}


def transpose(x: Tensor, perm: Sequence[int]) -> Tensor:
    """
    Return `x` with its dimensions reordered by `perm`.

    Raises
    ------
    AxisOutOfRangeError
        If an entry of `perm` is outside `[0, x.rank)`.
    ValidationError
        If `perm` is not a permutation of `range(x.rank)`.
    """
    _require_tensor(x, "x", "transpose")
    perm = [normalize_axis(p, x.rank) for p in perm]
    if sorted(perm) != list(range(x.rank)):
        raise ValidationError(
            f"transpose: {perm} is not a permutation of range({x.rank})"
        )
    return ENGINE.run_kernel(
        "transpose",
        lambda be: TransposeFn.forward(be, x, perm),
        {"x": x},
        TransposeFn.backward,
        saved_meta={"perm": tuple(perm)},
    )


# ---------------------------------------------------------------------
# gather
# ---------------------------------------------------------------------
class GatherFn(Function):
    """
    Select slices of `x` along `axis`.

    Forward:  out[..., i, ...] = x[..., indices[i], ...]
    Backward: dx = unsorted_segment_sum(grad_out, indices, x.shape[axis], axis)

    The backward rule is a scatter-add: a slice gathered several times
    receives the sum of the corresponding upstream slices.
    """

    @staticmethod
    def forward(backend, x: Tensor, indices: Tensor, axis: int) -> Tensor:
        return backend.gather(x, indices, axis)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Mapping[str, Optional[Tensor]]:
        from .segment_ops import unsorted_segment_sum

        (indices,) = ctx.saved_tensors
        axis = ctx.saved_meta["axis"]
        dim = ctx.saved_meta["dim"]
        return {"x": unsorted_segment_sum(grad_out, indices, dim, axis=axis)}


def gather(x: Tensor, indices: Tensor, axis: int = 0) -> Tensor:
    """
    Gather slices of `x` at `indices` along `axis`.

    Parameters
    ----------
    x : Tensor
        Source tensor.
    indices : Tensor
        1-D signed integer tensor with values in `[0, x.shape[axis])`.
    axis : int, optional
        Axis to gather along. Defaults to 0.

    Returns
    -------
    Tensor
        Tensor with `x.shape[axis]` replaced by `len(indices)`.

    Raises
    ------
    MissingTensorError, SegmentIdsDtypeError, ShapeMismatchError,
    AxisOutOfRangeError
        On malformed arguments.
    IndexError
        If an index is out of range (raised by the kernel).
    """
    _require_tensor(x, "x", "gather")
    _require_tensor(indices, "indices", "gather")
    _require_index_dtype(indices, "gather")
    _require_1d(indices, "indices", "gather")
    axis = normalize_axis(axis, x.rank)

    return ENGINE.run_kernel(
        "gather",
        lambda be: GatherFn.forward(be, x, indices, axis),
        {"x": x, "indices": indices},
        GatherFn.backward,
        saved_tensors=(indices,),
        saved_meta={"axis": axis, "dim": x.shape[axis]},
    )


# ---------------------------------------------------------------------
# Non-differentiable elementwise ops
# ---------------------------------------------------------------------
def maximum(a: Tensor, b: Tensor) -> Tensor:
    """Elementwise maximum with broadcasting."""
    _require_tensor(a, "a", "maximum")
    _require_tensor(b, "b", "maximum")
    _broadcast_shape("maximum", a.shape, b.shape)
    return ENGINE.run_kernel("maximum", lambda be: be.maximum(a, b), {"a": a, "b": b})


def greater_equal(a: Tensor, b: Tensor) -> Tensor:
    """Elementwise `a >= b` with broadcasting; returns a bool tensor."""
    _require_tensor(a, "a", "greater_equal")
    _require_tensor(b, "b", "greater_equal")
    _broadcast_shape("greater_equal", a.shape, b.shape)
    return ENGINE.run_kernel(
        "greater_equal", lambda be: be.greater_equal(a, b), {"a": a, "b": b}
    )


def logical_and(a: Tensor, b: Tensor) -> Tensor:
    """Elementwise logical AND of two bool tensors, with broadcasting."""
    _require_tensor(a, "a", "logical_and")
    _require_tensor(b, "b", "logical_and")
    for name, t in (("a", a), ("b", b)):
        if t.dtype != np.bool_:
            raise ValidationError(
                f"logical_and expects bool tensors, got '{name}' of dtype {t.dtype}"
            )
    _broadcast_shape("logical_and", a.shape, b.shape)
    return ENGINE.run_kernel(
        "logical_and", lambda be: be.logical_and(a, b), {"a": a, "b": b}
    )


def broadcast_to(x: Tensor, shape: Sequence[int]) -> Tensor:
    """
    Materialise `x` broadcast to `shape`.

    Raises
    ------
    ShapeMismatchError
        If `x.shape` cannot be broadcast to `shape`.
    """
    _require_tensor(x, "x", "broadcast_to")
    shape = tuple(int(d) for d in shape)
    if _broadcast_shape("broadcast_to", x.shape, shape) != shape:
        raise ShapeMismatchError(
            f"broadcast_to: cannot broadcast {x.shape} to {shape}",
            expected=shape,
            got=x.shape,
        )
    return ENGINE.run_kernel(
        "broadcast_to", lambda be: be.broadcast_to(x, shape), {"x": x}
    )


def _reshape(x: Tensor, shape: tuple[int, ...]) -> Tensor:
    return ENGINE.run_kernel("reshape", lambda be: be.reshape(x, shape), {"x": x})


# ---------------------------------------------------------------------
# where
# ---------------------------------------------------------------------
class WhereFn(Function):
    """
    Masked select.

    Forward:  out = mask ? a : b
    Backward: da = mask ? grad_out : 0,  db = mask ? 0 : grad_out
    """

    @staticmethod
    def forward(backend, mask: Tensor, a: Tensor, b: Tensor) -> Tensor:
        return backend.where(mask, a, b)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Mapping[str, Optional[Tensor]]:
        (mask,) = ctx.saved_tensors
        zeros = zeros_like(grad_out)
        return {
            "a": where(mask, grad_out, zeros),
            "b": where(mask, zeros, grad_out),
        }


def where(mask: Tensor, a: Tensor, b: Tensor) -> Tensor:
    """
    Select from `a` where `mask` is true and from `b` elsewhere.

    `a` and `b` must share a shape; `mask` must be a bool tensor that
    broadcasts to that shape.

    Raises
    ------
    ValidationError
        If `mask` is not bool.
    ShapeMismatchError
        If `a` and `b` differ in shape or `mask` does not broadcast to it.
    """
    _require_tensor(mask, "mask", "where")
    _require_tensor(a, "a", "where")
    _require_tensor(b, "b", "where")
    if mask.dtype != np.bool_:
        raise ValidationError(f"where expects a bool mask, got dtype {mask.dtype}")
    if a.shape != b.shape:
        raise ShapeMismatchError(
            f"where: branch shapes differ: {a.shape} vs {b.shape}",
            expected=a.shape,
            got=b.shape,
        )
    if _broadcast_shape("where", mask.shape, a.shape) != a.shape:
        raise ShapeMismatchError(
            f"where: mask of shape {mask.shape} does not broadcast to {a.shape}",
            expected=a.shape,
            got=mask.shape,
        )
    return ENGINE.run_kernel(
        "where",
        lambda be: WhereFn.forward(be, mask, a, b),
        {"mask": mask, "a": a, "b": b},
        WhereFn.backward,
        saved_tensors=(mask,),
    )


# ---------------------------------------------------------------------
# expand_dims
# ---------------------------------------------------------------------
class ExpandDimsFn(Function):
    """
    Insert a dimension of size 1.

    Backward: reshape the upstream gradient to the input shape.
    """

    @staticmethod
    def forward(backend, x: Tensor, axis: int) -> Tensor:
        return backend.expand_dims(x, axis)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Mapping[str, Optional[Tensor]]:
        return {"x": _reshape(grad_out, ctx.saved_meta["in_shape"])}


def expand_dims(x: Tensor, axis: int = -1) -> Tensor:
    """
    Insert a unit dimension at `axis`.

    `axis` may be in `[-(rank + 1), rank]`; the default -1 appends a
    trailing dimension.
    """
    _require_tensor(x, "x", "expand_dims")
    rank = x.rank
    if isinstance(axis, bool) or not isinstance(axis, (int, np.integer)):
        raise AxisOutOfRangeError(axis, rank + 1)
    axis = int(axis)
    if axis < -(rank + 1) or axis > rank:
        raise AxisOutOfRangeError(axis, rank + 1)
    if axis < 0:
        axis += rank + 1
    return ENGINE.run_kernel(
        "expand_dims",
        lambda be: ExpandDimsFn.forward(be, x, axis),
        {"x": x},
        ExpandDimsFn.backward,
        saved_meta={"in_shape": x.shape},
    )


# ---------------------------------------------------------------------
# sum
# ---------------------------------------------------------------------
class SumFn(Function):
    """
    Full reduction to a scalar.

    Backward: every input element receives the upstream scalar.
    """

    @staticmethod
    def forward(backend, x: Tensor) -> Tensor:
        return backend.sum(x)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Mapping[str, Optional[Tensor]]:
        return {"x": broadcast_to(grad_out, ctx.saved_meta["in_shape"])}


def reduce_sum(x: Tensor) -> Tensor:
    """Sum all elements of `x` into a scalar tensor."""
    _require_tensor(x, "x", "sum")
    return ENGINE.run_kernel(
        "sum",
        lambda be: SumFn.forward(be, x),
        {"x": x},
        SumFn.backward,
        saved_meta={"in_shape": x.shape},
    )


# ---------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------
def zeros_like(x: Tensor, dtype: Any = None) -> Tensor:
    """Zero-filled tensor with the shape and device of `x`."""
    _require_tensor(x, "x", "zeros_like")
    return ENGINE.run_kernel("zeros_like", lambda be: be.zeros_like(x, dtype), {"x": x})


def ones_like(x: Tensor, dtype: Any = None) -> Tensor:
    """One-filled tensor with the shape and device of `x`."""
    _require_tensor(x, "x", "ones_like")
    return ENGINE.run_kernel("ones_like", lambda be: be.ones_like(x, dtype), {"x": x})


def scalar(value: Any, dtype: Any = np.float32, device: Optional[Device] = None) -> Tensor:
    """Rank-0 tensor holding `value`."""
    device = Device("cpu") if device is None else device
    return get_backend(device, op="scalar").full((), value, dtype, device)

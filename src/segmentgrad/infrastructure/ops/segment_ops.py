"""
Unsorted segment sum with reverse-mode differentiation.

Forward
-------
`unsorted_segment_sum(x, segment_ids, num_segments, axis)` sums the slices
of `x` along `axis` that share a segment id. Ids need not be sorted or
contiguous. A negative id drops its slice from every segment.

The reduction kernel is written for axis 0; other axes are moved to the
front before dispatch and moved back afterwards (see `axis_normalizer`).

Backward
--------
The gradient is *not* the transpose of the forward kernel applied blindly:
each input slice takes the upstream gradient of the segment it was summed
into, and a slice with a negative id, which reached no segment, takes
exactly zero. `gather_drop_negatives` does this by clamping ids to 0 (so
every gather index is in bounds), gathering, and then zeroing the slices
whose original id was negative.

Policies
--------
- Ids `>= num_segments` are rejected with `SegmentIdOutOfRangeError`
  before dispatch.
- `num_segments == 0` is valid. With empty or all-negative ids the result
  has a zero-length segment axis; any non-negative id is out of range.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import numpy as np

from ...domain._errors import (
    DeviceMismatchError,
    NumSegmentsError,
    SegmentIdOutOfRangeError,
    ShapeMismatchError,
)
from ...domain._function import Function
from ..backend import get_backend
from ..engine import ENGINE
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import Context
from .array_ops import (
    _require_1d,
    _require_index_dtype,
    _require_tensor,
    broadcast_to,
    expand_dims,
    gather,
    greater_equal,
    maximum,
    scalar,
    where,
    zeros_like,
)
from .axis_normalizer import denormalize, normalize
from .axis_util import normalize_axis

logger = logging.getLogger(__name__)

_OP = "unsorted_segment_sum"


def _validate_num_segments(num_segments: Any) -> int:
    if isinstance(num_segments, bool) or not isinstance(
        num_segments, (int, np.integer)
    ):
        raise NumSegmentsError(num_segments)
    if num_segments < 0:
        raise NumSegmentsError(num_segments)
    return int(num_segments)


def _check_segment_id_range(segment_ids: Tensor, num_segments: int) -> None:
    ids = segment_ids.to_numpy()
    if ids.size and int(ids.max()) >= num_segments:
        raise SegmentIdOutOfRangeError(int(ids.max()), num_segments)


class UnsortedSegmentSumFn(Function):
    """
    Grouped sum along axis 0.

    Saved context
    -------------
    - `saved_tensors`: [segment_ids]
    - `saved_meta`:
        - "axis": canonical reduction axis (always 0)
        - "num_segments": segment count
        - "out_shape": forward output shape, checked against `grad_out`
    """

    @staticmethod
    def forward(
        backend, x: Tensor, segment_ids: Tensor, num_segments: int
    ) -> Tensor:
        return backend.unsorted_segment_sum(x, segment_ids, num_segments)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Mapping[str, Optional[Tensor]]:
        out_shape = ctx.saved_meta["out_shape"]
        if grad_out.shape != out_shape:
            raise ShapeMismatchError(
                f"{_OP} backward: upstream gradient has shape {grad_out.shape}, "
                f"forward output had shape {out_shape}",
                expected=out_shape,
                got=grad_out.shape,
            )
        (segment_ids,) = ctx.saved_tensors
        return {
            "permuted_x": gather_drop_negatives(
                grad_out, segment_ids, ctx.saved_meta["axis"]
            )
        }


def unsorted_segment_sum(
    x: Tensor, segment_ids: Tensor, num_segments: int, axis: int = 0
) -> Tensor:
    """
    Compute the sum along segments of a tensor.

    Parameters
    ----------
    x : Tensor
        Tensor to reduce, rank >= 1.
    segment_ids : Tensor
        1-D signed integer tensor with one id per slice of `x` along
        `axis`. Ids in `[0, num_segments)` select an output segment;
        negative ids exclude the slice.
    num_segments : int
        Number of output segments (size of the result along `axis`).
    axis : int, optional
        Axis to reduce, in `[0, x.rank)`. Defaults to 0.

    Returns
    -------
    Tensor
        `x.shape` with `x.shape[axis]` replaced by `num_segments`. Slot `s`
        holds the sum of the slices whose id is `s`, or zeros.

    Raises
    ------
    MissingTensorError
        If `x` or `segment_ids` is not a Tensor.
    SegmentIdsDtypeError
        If `segment_ids` is not a signed integer tensor.
    NumSegmentsError
        If `num_segments` is not a non-negative integer.
    ShapeMismatchError
        If `segment_ids` is not 1-D, `x` is a scalar, or the lengths disagree.
    AxisOutOfRangeError
        If `axis` is outside `[0, x.rank)`.
    SegmentIdOutOfRangeError
        If an id is `>= num_segments`.
    DeviceMismatchError
        If `x` and `segment_ids` live on different devices.

    Examples
    --------
    >>> x = Tensor.from_numpy([1.0, 2.0, 3.0, 4.0])
    >>> ids = Tensor.from_numpy(np.array([1, 2, 0, 1], dtype=np.int32))
    >>> unsorted_segment_sum(x, ids, 3).to_numpy()
    array([3., 5., 2.], dtype=float32)
    """
    _require_tensor(x, "x", _OP)
    _require_tensor(segment_ids, "segment_ids", _OP)
    _require_index_dtype(segment_ids, _OP)
    num_segments = _validate_num_segments(num_segments)
    _require_1d(segment_ids, "segment_ids", _OP)
    if x.rank < 1:
        raise ShapeMismatchError(f"{_OP} expects x of rank >= 1, got a scalar")
    axis = normalize_axis(axis, x.rank)
    if segment_ids.shape[0] != x.shape[axis]:
        raise ShapeMismatchError(
            f"{_OP}: segment_ids has length {segment_ids.shape[0]} but x has "
            f"size {x.shape[axis]} along axis {axis}",
            expected=(x.shape[axis],),
            got=segment_ids.shape,
        )
    if segment_ids.device != x.device:
        raise DeviceMismatchError(str(x.device), str(segment_ids.device))
    _check_segment_id_range(segment_ids, num_segments)

    permuted_x, permutation, canonical_axis = normalize(x, axis)
    if permutation is not None:
        logger.debug("%s: moved axis %d to front with %s", _OP, axis, permutation)

    out_shape = (num_segments,) + tuple(permuted_x.shape[1:])
    result = ENGINE.run_kernel(
        _OP,
        lambda be: UnsortedSegmentSumFn.forward(
            be, permuted_x, segment_ids, num_segments
        ),
        {"permuted_x": permuted_x},
        UnsortedSegmentSumFn.backward,
        saved_tensors=(segment_ids,),
        saved_meta={
            "axis": canonical_axis,
            "num_segments": num_segments,
            "out_shape": out_shape,
        },
    )
    return denormalize(result, permutation)


def gather_drop_negatives(dy: Tensor, segment_ids: Tensor, axis: int = 0) -> Tensor:
    """
    Gather per-segment gradients back to per-slice positions.

    For every position `i` along `axis`, the result holds the slice
    `dy[segment_ids[i]]` when `segment_ids[i] >= 0`, and zeros otherwise.

    Parameters
    ----------
    dy : Tensor
        Gradient with respect to the segment sums, shape
        `(..., num_segments, ...)` with the segment axis at `axis`.
    segment_ids : Tensor
        1-D signed integer ids recorded by the forward call.
    axis : int, optional
        Segment axis of `dy`. Defaults to 0.

    Returns
    -------
    Tensor
        `dy.shape` with the segment axis replaced by `len(segment_ids)`.

    Raises
    ------
    ShapeMismatchError
        If `segment_ids` is not 1-D.
    AxisOutOfRangeError
        If `axis` is outside `[0, dy.rank)`.
    """
    op = "gather_drop_negatives"
    _require_tensor(dy, "dy", op)
    _require_tensor(segment_ids, "segment_ids", op)
    _require_index_dtype(segment_ids, op)
    _require_1d(segment_ids, "segment_ids", op)
    axis = normalize_axis(axis, dy.rank)

    if dy.shape[axis] == 0:
        # no segment to gather from; every id is necessarily negative
        out_shape = dy.shape[:axis] + segment_ids.shape + dy.shape[axis + 1 :]
        return get_backend(dy.device, op=op).full(out_shape, 0, dy.dtype, dy.device)

    zero_clipped = maximum(segment_ids, zeros_like(segment_ids))
    gathered = gather(dy, zero_clipped, axis)

    is_positive = greater_equal(
        segment_ids, scalar(0, segment_ids.dtype, segment_ids.device)
    )
    # align the id axis with `axis` of gathered; leading dims broadcast
    for _ in range(gathered.rank - 1 - axis):
        is_positive = expand_dims(is_positive, -1)
    is_positive = broadcast_to(is_positive, gathered.shape)

    return where(is_positive, gathered, zeros_like(gathered))

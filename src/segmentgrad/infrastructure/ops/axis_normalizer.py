"""
Map a reduction over any axis onto the canonical axis-0 form.

`normalize` moves the target axis to the front (transposing only when
needed) and `denormalize` undoes it. Both go through the differentiable
`transpose`, so gradients flowing back through a normalized reduction are
un-permuted automatically.
"""

from __future__ import annotations

from typing import Optional, Sequence

from ..tensor._tensor import Tensor
from .array_ops import transpose
from .axis_util import get_axes_permutation, get_undo_axes_permutation


def normalize(x: Tensor, axis: int) -> tuple[Tensor, Optional[list[int]], int]:
    """
    Put `axis` of `x` at dimension 0.

    Returns
    -------
    tuple[Tensor, Optional[list[int]], int]
        `(permuted_x, permutation, canonical_axis)`. When `axis == 0` the
        permutation is None and `permuted_x` is `x` itself (no copy). The
        canonical axis is always 0.

    Raises
    ------
    AxisOutOfRangeError
        If `axis` is outside `[0, x.rank)`.
    """
    perm = get_axes_permutation(axis, x.rank)
    if perm is None:
        return x, None, 0
    return transpose(x, perm), perm, 0


def denormalize(result: Tensor, permutation: Optional[Sequence[int]]) -> Tensor:
    """Restore the dimension order that `normalize` changed."""
    if permutation is None:
        return result
    return transpose(result, get_undo_axes_permutation(permutation))

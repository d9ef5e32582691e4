"""
Axis and permutation helpers.

Pure functions over ints and lists; nothing here touches tensors.
A reduction written for axis 0 is applied to any axis by moving that axis
to the front with `get_axes_permutation` and restoring the original order
with `get_undo_axes_permutation`.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from ...domain._errors import AxisOutOfRangeError, ValidationError


def normalize_axis(axis: int, rank: int) -> int:
    """
    Validate that `axis` indexes a dimension of a rank-`rank` tensor.

    Parameters
    ----------
    axis : int
        Axis index. Must be an int (not bool) in `[0, rank)`.
    rank : int
        Tensor rank.

    Returns
    -------
    int
        `axis` as a plain int.

    Raises
    ------
    AxisOutOfRangeError
        If `axis` is not an int or lies outside `[0, rank)`.
    """
    if isinstance(axis, bool) or not isinstance(axis, (int, np.integer)):
        raise AxisOutOfRangeError(axis, rank)
    axis = int(axis)
    if axis < 0 or axis >= rank:
        raise AxisOutOfRangeError(axis, rank)
    return axis


def get_axes_permutation(axis: int, rank: int) -> Optional[list[int]]:
    """
    Return the permutation moving `axis` to position 0.

    The remaining dimensions keep their relative order. Returns None when
    `axis` is already 0 (identity; no transpose is needed).

    Examples
    --------
    >>> get_axes_permutation(2, 4)
    [2, 0, 1, 3]
    >>> get_axes_permutation(0, 3) is None
    True
    """
    axis = normalize_axis(axis, rank)
    if axis == 0:
        return None
    return [axis] + [d for d in range(rank) if d != axis]


def get_undo_axes_permutation(perm: Sequence[int]) -> list[int]:
    """
    Return the inverse of `perm`.

    Applying `perm` and then the returned permutation restores the original
    dimension order.

    Raises
    ------
    ValidationError
        If `perm` is not a permutation of `range(len(perm))`.
    """
    perm = [int(p) for p in perm]
    if sorted(perm) != list(range(len(perm))):
        raise ValidationError(f"{perm} is not a permutation of range({len(perm)})")
    undo = [0] * len(perm)
    for i, p in enumerate(perm):
        undo[p] = i
    return undo

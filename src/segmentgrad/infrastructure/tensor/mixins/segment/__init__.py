"""
Segment reduction mixin for Tensor.

Exposes the method form of the segment operators, so that

    x.unsorted_segment_sum(segment_ids, num_segments)

is equivalent to

    unsorted_segment_sum(x, segment_ids, num_segments)

Public API
----------
Only `TensorMixinSegment` is re-exported.
"""

from ._base import TensorMixinSegment

__all__ = [
    TensorMixinSegment.__name__,
]

"""
Segment reduction mixin defining the method-style Tensor API.

The mixin holds no numerical logic. Each method forwards to the functional
operator in `infrastructure.ops.segment_ops`, which validates arguments,
dispatches through the engine and records the gradient.
"""

from abc import ABC

from .....domain._tensor import ITensor


class TensorMixinSegment(ABC):
    """Mixin adding segment reductions to Tensor."""

    def unsorted_segment_sum(
        self: ITensor, segment_ids: ITensor, num_segments: int, axis: int = 0
    ) -> ITensor:
        """
        Sum the slices of this tensor along `axis`, grouped by `segment_ids`.

        Parameters
        ----------
        segment_ids : ITensor
            1-D signed integer tensor, one id per slice along `axis`.
            Negative ids drop the slice from every segment.
        num_segments : int
            Number of output segments.
        axis : int, optional
            Axis to reduce. Defaults to 0.

        Returns
        -------
        ITensor
            Tensor whose `axis` dimension has size `num_segments`.

        Notes
        -----
        Backward rule:
            Each input slice receives the upstream gradient of its segment,
            or zeros if its id is negative.
        """
        from ....ops.segment_ops import unsorted_segment_sum

        return unsorted_segment_sum(self, segment_ids, num_segments, axis=axis)

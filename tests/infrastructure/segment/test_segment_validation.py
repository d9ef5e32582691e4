import unittest
from unittest.mock import patch

import numpy as np

from src.segmentgrad.domain.device._device import Device
from src.segmentgrad.domain._errors import (
    AxisOutOfRangeError,
    DeviceMismatchError,
    DeviceNotSupportedError,
    MissingTensorError,
    NumSegmentsError,
    SegmentIdOutOfRangeError,
    SegmentIdsDtypeError,
    ShapeMismatchError,
    ValidationError,
)
from src.segmentgrad.infrastructure.engine import ENGINE
from src.segmentgrad.infrastructure.tensor import Tensor
from src.segmentgrad.infrastructure.ops.segment_ops import unsorted_segment_sum


def tensor_from_numpy(arr, requires_grad: bool = False, dtype=np.float32) -> Tensor:
    arr = np.asarray(arr, dtype=dtype)
    t = Tensor(shape=arr.shape, device=Device("cpu"), requires_grad=requires_grad, dtype=dtype)
    t.copy_from_numpy(arr)
    return t


def ids_from(values, dtype=np.int32) -> Tensor:
    return tensor_from_numpy(np.asarray(values), dtype=dtype)


class TestUnsortedSegmentSumValidation(unittest.TestCase):
    def setUp(self):
        self.x = tensor_from_numpy([1.0, 2.0, 3.0], requires_grad=True)
        self.ids = ids_from([0, 1, 0])

    def assert_rejected_before_dispatch(self, exc_type, *args, **kwargs):
        with patch.object(ENGINE, "run_kernel") as run_kernel:
            with self.assertRaises(exc_type):
                unsorted_segment_sum(*args, **kwargs)
            run_kernel.assert_not_called()

    def test_missing_x(self):
        self.assert_rejected_before_dispatch(MissingTensorError, None, self.ids, 2)

    def test_missing_segment_ids(self):
        self.assert_rejected_before_dispatch(
            MissingTensorError, self.x, np.array([0, 1, 0]), 2
        )

    def test_float_segment_ids(self):
        self.assert_rejected_before_dispatch(
            SegmentIdsDtypeError, self.x, tensor_from_numpy([0.0, 1.0, 0.0]), 2
        )

    def test_unsigned_and_bool_segment_ids(self):
        for dtype in (np.uint32, np.bool_):
            with self.subTest(dtype=dtype):
                self.assert_rejected_before_dispatch(
                    SegmentIdsDtypeError, self.x, ids_from([0, 1, 0], dtype=dtype), 2
                )

    def test_num_segments_not_an_int(self):
        for bad in (2.0, "2", None, True, ids_from([2])):
            with self.subTest(num_segments=bad):
                self.assert_rejected_before_dispatch(
                    NumSegmentsError, self.x, self.ids, bad
                )

    def test_negative_num_segments(self):
        self.assert_rejected_before_dispatch(NumSegmentsError, self.x, self.ids, -1)

    def test_validation_errors_share_a_base(self):
        for exc in (MissingTensorError, SegmentIdsDtypeError, NumSegmentsError):
            self.assertTrue(issubclass(exc, ValidationError))

    def test_segment_ids_must_be_1d(self):
        self.assert_rejected_before_dispatch(
            ShapeMismatchError, self.x, ids_from([[0, 1, 0]]), 2
        )

    def test_scalar_x(self):
        self.assert_rejected_before_dispatch(
            ShapeMismatchError, tensor_from_numpy(1.0), ids_from([0]), 1
        )

    def test_length_mismatch(self):
        self.assert_rejected_before_dispatch(
            ShapeMismatchError, self.x, ids_from([0, 1]), 2
        )

    def test_length_mismatch_on_non_leading_axis(self):
        x = tensor_from_numpy(np.ones((3, 2)))
        self.assert_rejected_before_dispatch(
            ShapeMismatchError, x, ids_from([0, 1, 0]), 2, axis=1
        )

    def test_axis_out_of_range(self):
        for axis in (1, 5, -1, 1.0):
            with self.subTest(axis=axis):
                self.assert_rejected_before_dispatch(
                    AxisOutOfRangeError, self.x, self.ids, 2, axis=axis
                )

    def test_id_at_or_above_num_segments(self):
        self.assert_rejected_before_dispatch(
            SegmentIdOutOfRangeError, self.x, ids_from([0, 2, 0]), 2
        )

    def test_zero_segments_with_non_negative_id(self):
        self.assert_rejected_before_dispatch(
            SegmentIdOutOfRangeError, self.x, ids_from([-1, 0, -1]), 0
        )

    def test_out_of_range_message_names_the_id(self):
        with self.assertRaises(SegmentIdOutOfRangeError) as cm:
            unsorted_segment_sum(self.x, ids_from([7, 0, 0]), 3)
        self.assertEqual(cm.exception.max_id, 7)
        self.assertEqual(cm.exception.num_segments, 3)

    def test_device_mismatch(self):
        ids = Tensor((3,), Device("cuda:0"), dtype=np.int32)
        self.assert_rejected_before_dispatch(DeviceMismatchError, self.x, ids, 2)

    def test_cuda_inputs_are_not_supported(self):
        x = Tensor((3,), Device("cuda:0"))
        ids = Tensor((3,), Device("cuda:0"), dtype=np.int32)
        with self.assertRaises(DeviceNotSupportedError):
            unsorted_segment_sum(x, ids, 2)


if __name__ == "__main__":
    unittest.main()

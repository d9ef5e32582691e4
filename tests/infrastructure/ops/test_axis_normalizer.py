import unittest
import numpy as np

from src.segmentgrad.domain.device._device import Device
from src.segmentgrad.domain._errors import AxisOutOfRangeError
from src.segmentgrad.infrastructure.tensor import Tensor
from src.segmentgrad.infrastructure.ops.axis_normalizer import denormalize, normalize


def tensor_from_numpy(arr, requires_grad: bool = False, dtype=np.float32) -> Tensor:
    arr = np.asarray(arr, dtype=dtype)
    t = Tensor(shape=arr.shape, device=Device("cpu"), requires_grad=requires_grad, dtype=dtype)
    t.copy_from_numpy(arr)
    return t


class TestAxisNormalizer(unittest.TestCase):
    def test_axis_zero_returns_input(self):
        x = tensor_from_numpy(np.ones((2, 3)))
        permuted, perm, canonical = normalize(x, 0)
        self.assertIs(permuted, x)
        self.assertIsNone(perm)
        self.assertEqual(canonical, 0)
        self.assertIs(denormalize(x, None), x)

    def test_moves_axis_to_front(self):
        x_np = np.random.randn(2, 3, 4).astype(np.float32)
        permuted, perm, canonical = normalize(tensor_from_numpy(x_np), 2)
        self.assertEqual(perm, [2, 0, 1])
        self.assertEqual(canonical, 0)
        self.assertEqual(permuted.shape, (4, 2, 3))
        self.assertTrue(np.allclose(permuted.to_numpy(), np.moveaxis(x_np, 2, 0)))

    def test_round_trip(self):
        x_np = np.random.randn(2, 3, 4, 5).astype(np.float32)
        x = tensor_from_numpy(x_np)
        for axis in range(4):
            with self.subTest(axis=axis):
                permuted, perm, _ = normalize(x, axis)
                back = denormalize(permuted, perm)
                self.assertEqual(back.shape, x.shape)
                self.assertTrue(np.array_equal(back.to_numpy(), x_np))

    def test_reduced_result_restores_order(self):
        x = tensor_from_numpy(np.ones((2, 3, 4)))
        permuted, perm, _ = normalize(x, 1)
        reduced = tensor_from_numpy(np.zeros((7,) + permuted.shape[1:]))
        self.assertEqual(denormalize(reduced, perm).shape, (2, 7, 4))

    def test_gradient_flows_through_permutation(self):
        x = tensor_from_numpy(np.ones((2, 3)), requires_grad=True)
        permuted, perm, _ = normalize(x, 1)
        denormalize(permuted, perm).sum().backward()
        self.assertTrue(np.allclose(x.grad.to_numpy(), np.ones((2, 3))))

    def test_bad_axis(self):
        with self.assertRaises(AxisOutOfRangeError):
            normalize(tensor_from_numpy(np.ones((2, 3))), 2)


if __name__ == "__main__":
    unittest.main()

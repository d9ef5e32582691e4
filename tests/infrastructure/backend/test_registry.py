import unittest

import numpy as np

from src.segmentgrad.domain._backend import IBackend
from src.segmentgrad.domain.device._device import Device, DeviceType
from src.segmentgrad.domain._errors import DeviceNotSupportedError
from src.segmentgrad.infrastructure.backend import (
    CpuBackend,
    get_backend,
    register_backend,
    unregister_backend,
)
from src.segmentgrad.infrastructure.engine import ENGINE
from src.segmentgrad.infrastructure.tensor import Tensor


class _FakeCudaBackend(CpuBackend):
    name = "fake-cuda"


class TestBackendRegistry(unittest.TestCase):
    def tearDown(self):
        unregister_backend(DeviceType.CUDA)

    def test_cpu_backend_is_registered_on_import(self):
        backend = get_backend(Device("cpu"))
        self.assertIsInstance(backend, CpuBackend)
        self.assertIsInstance(backend, IBackend)

    def test_unregistered_device_raises(self):
        with self.assertRaises(DeviceNotSupportedError) as cm:
            get_backend(Device("cuda:0"), op="gather")
        self.assertIn("gather", str(cm.exception))

    def test_register_and_resolve(self):
        fake = _FakeCudaBackend()
        register_backend(DeviceType.CUDA, fake)
        self.assertIs(get_backend(Device("cuda:1")), fake)

    def test_engine_dispatches_to_registered_backend(self):
        fake = _FakeCudaBackend()
        register_backend(DeviceType.CUDA, fake)
        seen = []
        x = Tensor((1,), Device("cuda:0"))
        ENGINE.run_kernel("probe", lambda be: seen.append(be) or x, {"x": x})
        self.assertEqual(seen, [fake])

    def test_duplicate_registration_rejected(self):
        register_backend(DeviceType.CUDA, _FakeCudaBackend())
        with self.assertRaises(ValueError):
            register_backend(DeviceType.CUDA, _FakeCudaBackend())

    def test_replace_allows_override(self):
        register_backend(DeviceType.CUDA, _FakeCudaBackend())
        second = _FakeCudaBackend()
        register_backend(DeviceType.CUDA, second, replace=True)
        self.assertIs(get_backend(Device("cuda:0")), second)

    def test_non_backend_rejected(self):
        with self.assertRaises(TypeError):
            register_backend(DeviceType.CUDA, object())

    def test_unregister_is_idempotent(self):
        unregister_backend(DeviceType.CUDA)
        unregister_backend(DeviceType.CUDA)
        with self.assertRaises(DeviceNotSupportedError):
            get_backend(Device("cuda:0"))


class TestCpuBackend(unittest.TestCase):
    def setUp(self):
        self.be = CpuBackend()
        self.cpu = Device("cpu")

    def t(self, arr, dtype=None):
        return Tensor.from_numpy(np.asarray(arr), device=self.cpu, dtype=dtype)

    def test_outputs_do_not_track_gradients(self):
        x = Tensor.from_numpy([1.0, 2.0], requires_grad=True)
        out = self.be.transpose(x, [0])
        self.assertFalse(out.requires_grad)
        self.assertIsNone(out._get_ctx())

    def test_unsorted_segment_sum(self):
        out = self.be.unsorted_segment_sum(
            self.t([[1.0], [2.0], [4.0]]), self.t([1, -1, 1], dtype=np.int64), 2
        )
        self.assertTrue(np.allclose(out.to_numpy(), [[0.0], [5.0]]))

    def test_transpose_and_reshape(self):
        x = self.t(np.arange(6.0).reshape(2, 3))
        self.assertEqual(self.be.transpose(x, [1, 0]).shape, (3, 2))
        self.assertEqual(self.be.reshape(x, (6,)).shape, (6,))
        self.assertEqual(self.be.expand_dims(x, 1).shape, (2, 1, 3))

    def test_broadcast_to_materialises(self):
        out = self.be.broadcast_to(self.t([1.0, 2.0]), (3, 2))
        self.assertEqual(out.shape, (3, 2))
        self.assertTrue(np.allclose(out.to_numpy()[2], [1.0, 2.0]))

    def test_gather(self):
        x = self.t([[1.0, 2.0], [3.0, 4.0]])
        out = self.be.gather(x, self.t([1, 1, 0], dtype=np.int32), 1)
        self.assertTrue(np.allclose(out.to_numpy(), [[2.0, 2.0, 1.0], [4.0, 4.0, 3.0]]))

    def test_elementwise(self):
        a = self.t([-1, 2, 0], dtype=np.int32)
        b = self.t([0, 0, 0], dtype=np.int32)
        self.assertTrue(np.array_equal(self.be.maximum(a, b).to_numpy(), [0, 2, 0]))
        ge = self.be.greater_equal(a, b)
        self.assertEqual(ge.dtype, np.bool_)
        self.assertTrue(np.array_equal(ge.to_numpy(), [False, True, True]))
        both = self.be.logical_and(ge, self.t([True, False, True]))
        self.assertTrue(np.array_equal(both.to_numpy(), [False, False, True]))

    def test_where_keeps_branch_dtype(self):
        out = self.be.where(
            self.t([True, False]),
            self.t([1.0, 2.0], dtype=np.float64),
            self.t([0.0, 0.0], dtype=np.float64),
        )
        self.assertEqual(out.dtype, np.float64)
        self.assertTrue(np.allclose(out.to_numpy(), [1.0, 0.0]))

    def test_construction(self):
        x = self.t([1, 2], dtype=np.int32)
        self.assertEqual(self.be.zeros_like(x).dtype, np.int32)
        self.assertEqual(self.be.ones_like(x, np.float32).dtype, np.float32)
        full = self.be.full((2,), 7, np.int64, self.cpu)
        self.assertTrue(np.array_equal(full.to_numpy(), [7, 7]))

    def test_sum_keeps_dtype(self):
        out = self.be.sum(self.t([1.0, 2.0], dtype=np.float64))
        self.assertEqual(out.shape, ())
        self.assertEqual(out.dtype, np.float64)
        self.assertEqual(out.item(), 3.0)


if __name__ == "__main__":
    unittest.main()

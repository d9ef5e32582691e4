import unittest
from unittest.mock import MagicMock

import numpy as np

from src.segmentgrad.domain.device._device import Device
from src.segmentgrad.domain._errors import (
    DeviceMismatchError,
    DeviceNotSupportedError,
    MissingTensorError,
)
from src.segmentgrad.infrastructure.backend import CpuBackend
from src.segmentgrad.infrastructure.engine import ENGINE, Engine
from src.segmentgrad.infrastructure.tensor import Tensor


def tensor_from_numpy(arr, requires_grad: bool = False, dtype=np.float32) -> Tensor:
    arr = np.asarray(arr, dtype=dtype)
    t = Tensor(shape=arr.shape, device=Device("cpu"), requires_grad=requires_grad, dtype=dtype)
    t.copy_from_numpy(arr)
    return t


def doubling_kernel(x):
    return lambda be: tensor_from_numpy(x.to_numpy() * 2.0)


class TestEngine(unittest.TestCase):
    def test_module_singleton(self):
        self.assertIsInstance(ENGINE, Engine)

    def test_kernel_receives_cpu_backend(self):
        x = tensor_from_numpy([1.0])
        seen = []

        def kernel(be):
            seen.append(be)
            return x

        Engine().run_kernel("probe", kernel, {"x": x})
        self.assertEqual(len(seen), 1)
        self.assertIsInstance(seen[0], CpuBackend)

    def test_no_context_without_grad_fn(self):
        x = tensor_from_numpy([1.0, 2.0], requires_grad=True)
        out = ENGINE.run_kernel("double", doubling_kernel(x), {"x": x})
        self.assertFalse(out.requires_grad)
        self.assertIsNone(out._get_ctx())

    def test_no_context_when_no_input_requires_grad(self):
        x = tensor_from_numpy([1.0, 2.0])
        grad_fn = MagicMock()
        out = ENGINE.run_kernel("double", doubling_kernel(x), {"x": x}, grad_fn)
        self.assertIsNone(out._get_ctx())
        grad_fn.assert_not_called()

    def test_context_is_recorded(self):
        x = tensor_from_numpy([1.0, 2.0], requires_grad=True)
        s = tensor_from_numpy([3.0])
        grad_fn = MagicMock(return_value={"x": tensor_from_numpy([2.0, 2.0])})

        out = ENGINE.run_kernel(
            "double",
            doubling_kernel(x),
            {"x": x},
            grad_fn,
            saved_tensors=(s,),
            saved_meta={"scale": 2.0},
        )
        ctx = out._get_ctx()
        self.assertTrue(out.requires_grad)
        self.assertEqual(ctx.op_name, "double")
        self.assertEqual(ctx.input_names, ("x",))
        self.assertIs(ctx.parents[0], x)
        self.assertIs(ctx.saved_tensors[0], s)
        self.assertEqual(ctx.saved_meta, {"scale": 2.0})
        grad_fn.assert_not_called()

        out.backward(tensor_from_numpy([1.0, 1.0]))
        grad_fn.assert_called_once()
        self.assertIs(grad_fn.call_args[0][0], ctx)
        self.assertTrue(np.allclose(x.grad.to_numpy(), [2.0, 2.0]))

    def test_grad_mapping_is_ordered_by_input_name(self):
        a = tensor_from_numpy([1.0], requires_grad=True)
        b = tensor_from_numpy([1.0], requires_grad=True)
        ga = tensor_from_numpy([3.0])
        gb = tensor_from_numpy([5.0])
        out = ENGINE.run_kernel(
            "pair",
            lambda be: tensor_from_numpy([2.0]),
            {"a": a, "b": b},
            lambda ctx, g: {"b": gb, "a": ga},
        )
        self.assertEqual(out._get_ctx().backward_fn(tensor_from_numpy([1.0])), (ga, gb))

    def test_missing_grads_become_none(self):
        a = tensor_from_numpy([1.0], requires_grad=True)
        b = tensor_from_numpy([1.0])
        out = ENGINE.run_kernel(
            "pair",
            lambda be: tensor_from_numpy([2.0]),
            {"a": a, "b": b},
            lambda ctx, g: {"a": g},
        )
        grads = out._get_ctx().backward_fn(tensor_from_numpy([1.0]))
        self.assertIsNone(grads[1])

    def test_non_tensor_input(self):
        with self.assertRaises(MissingTensorError):
            ENGINE.run_kernel("bad", lambda be: None, {"x": [1.0]})

    def test_no_inputs(self):
        with self.assertRaises(ValueError):
            ENGINE.run_kernel("bad", lambda be: None, {})

    def test_device_mismatch(self):
        a = tensor_from_numpy([1.0])
        b = Tensor((1,), Device("cuda:0"))
        kernel = MagicMock()
        with self.assertRaises(DeviceMismatchError):
            ENGINE.run_kernel("pair", kernel, {"a": a, "b": b})
        kernel.assert_not_called()

    def test_cuda_has_no_backend(self):
        x = Tensor((1,), Device("cuda:0"))
        kernel = MagicMock()
        with self.assertRaises(DeviceNotSupportedError):
            ENGINE.run_kernel("probe", kernel, {"x": x})
        kernel.assert_not_called()

    def test_dispatch_is_logged(self):
        x = tensor_from_numpy([1.0], requires_grad=True)
        with self.assertLogs("src.segmentgrad.infrastructure.engine._engine", level="DEBUG") as cm:
            ENGINE.run_kernel(
                "double", doubling_kernel(x), {"x": x}, lambda ctx, g: {"x": g}
            )
        joined = "\n".join(cm.output)
        self.assertIn("dispatch double", joined)
        self.assertIn("recorded gradient for double", joined)


if __name__ == "__main__":
    unittest.main()

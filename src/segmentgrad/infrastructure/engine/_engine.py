"""
Kernel execution and gradient registration.

`Engine.run_kernel` is the single dispatch point used by every operator:

1. check that all named inputs share one device,
2. resolve the backend registered for that device,
3. run the kernel callable against it,
4. if a gradient function is given and any input requires grad, attach a
   `Context` to the output recording the inputs, the tensors/metadata the
   gradient function needs, and the gradient function itself.

The gradient function has the `Function.backward` signature
`(ctx, grad_out) -> Mapping[name, Optional[Tensor]]`; the engine turns the
mapping into the per-parent tuple `Tensor.backward` consumes.

The engine holds no mutable state of its own between calls, so concurrent
callers need no synchronisation.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from ...domain._backend import IBackend
from ...domain._errors import DeviceMismatchError, MissingTensorError
from ..backend import get_backend
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import Context

logger = logging.getLogger(__name__)

KernelFn = Callable[[IBackend], Tensor]
GradFn = Callable[[Context, Tensor], Mapping[str, Optional[Tensor]]]


class Engine:
    """Dispatches kernels to backends and records gradient functions."""

    @staticmethod
    def _common_device(name: str, inputs: Mapping[str, Tensor]):
        device = None
        for arg_name, t in inputs.items():
            if not isinstance(t, Tensor):
                raise MissingTensorError(arg_name, name, t)
            if device is None:
                device = t.device
            elif t.device != device:
                raise DeviceMismatchError(str(device), str(t.device))
        if device is None:
            raise ValueError(f"run_kernel('{name}') requires at least one input tensor")
        return device

    def backend_for(self, name: str, inputs: Mapping[str, Tensor]) -> IBackend:
        """Return the backend that would run `name` for `inputs`."""
        return get_backend(self._common_device(name, inputs), op=name)

    def run_kernel(
        self,
        name: str,
        kernel_fn: KernelFn,
        inputs: Mapping[str, Tensor],
        grad_fn: Optional[GradFn] = None,
        *,
        saved_tensors: Iterable[Tensor] = (),
        saved_meta: Optional[Mapping[str, Any]] = None,
    ) -> Tensor:
        """
        Run a kernel and optionally register its gradient.

        Parameters
        ----------
        name : str
            Operation name, used in errors and logs.
        kernel_fn : Callable[[IBackend], Tensor]
            Kernel to run against the resolved backend.
        inputs : Mapping[str, Tensor]
            Differentiable inputs, by name. Gradients are requested for
            these, in this order.
        grad_fn : Optional[GradFn], optional
            Backward rule. If None, the output never tracks gradients.
        saved_tensors : Iterable[Tensor], optional
            Non-differentiated tensors the backward rule reads.
        saved_meta : Mapping[str, Any], optional
            Non-tensor metadata the backward rule reads.

        Returns
        -------
        Tensor
            The kernel output, with a `Context` attached when gradients are
            tracked.

        Raises
        ------
        MissingTensorError
            If an input is not a Tensor.
        DeviceMismatchError
            If inputs live on different devices.
        DeviceNotSupportedError
            If no backend serves the inputs' device.
        """
        backend = self.backend_for(name, inputs)
        logger.debug("dispatch %s on backend %r", name, backend.name)

        out = kernel_fn(backend)

        parents = tuple(inputs.values())
        if grad_fn is None or not any(p.requires_grad for p in parents):
            return out

        input_names = tuple(inputs.keys())

        def backward_fn(grad_out: Tensor):
            grads = grad_fn(ctx, grad_out)
            return tuple(grads.get(n) for n in input_names)

        ctx = Context(
            parents=parents,
            backward_fn=backward_fn,
            saved_meta=dict(saved_meta or {}),
            op_name=name,
            input_names=input_names,
        )
        ctx.save_for_backward(*saved_tensors)
        out.requires_grad = True
        out._set_ctx(ctx)
        logger.debug("recorded gradient for %s (inputs=%s)", name, input_names)
        return out


ENGINE = Engine()

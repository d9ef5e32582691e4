"""
Differentiable function interface.

A `Function` pairs a device kernel (`forward`) with its reverse-mode rule
(`backward`). Both are static: a `Function` class holds no state, and
everything `backward` needs is recorded on the per-invocation context by
the engine (saved tensors such as segment ids, and metadata such as the
reduction axis).
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from ._backend import IBackend
from ._tensor import ITensor


class Function(ABC):
    """
    Abstract base class for differentiable operations.

    Subclasses implement:

    - `forward(backend, *inputs, **attrs)`: run the kernel on the backend the
      engine resolved for the inputs' device and return the output tensor.
    - `backward(ctx, grad_out)`: given the gradient with respect to the
      output, return a mapping from input name (as passed to
      `Engine.run_kernel`) to the gradient for that input, or None.

    Notes
    -----
    `backward` must be pure: it may only read `ctx.saved_tensors`,
    `ctx.saved_meta` and `grad_out`. It is invoked at most once per
    backward pass and not at all if no gradient is requested.
    """

    @staticmethod
    @abstractmethod
    def forward(backend: IBackend, *inputs: Any, **attrs: Any) -> ITensor:
        """
        Run the forward kernel.

        Parameters
        ----------
        backend : IBackend
            Kernel library for the inputs' device.
        *inputs : Any
            Input tensors followed by any non-tensor arguments.

        Returns
        -------
        ITensor
            The output tensor.
        """
        ...

    @staticmethod
    @abstractmethod
    def backward(ctx, grad_out: ITensor) -> Mapping[str, Optional[ITensor]]:
        """
        Compute gradients with respect to the named inputs.

        Parameters
        ----------
        ctx : Context
            The record created by the engine for this invocation.
        grad_out : ITensor
            Gradient of the loss with respect to the output.

        Returns
        -------
        Mapping[str, Optional[ITensor]]
            Gradient per input name. Missing names or None entries mean no
            gradient flows to that input.
        """
        ...

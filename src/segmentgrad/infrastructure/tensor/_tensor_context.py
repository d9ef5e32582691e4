from typing import Any, Callable, Sequence, Optional
from dataclasses import dataclass, field

from ...domain._tensor import ITensor


@dataclass
class Context:
    """
    Gradient record attached to a tensor produced by a differentiable op.

    A `Context` is the explicit form of a deferred backward computation: it
    holds the captured inputs of one forward invocation and a reference to
    the pure function that maps the upstream gradient to input gradients.
    The engine attaches it to the output tensor; `Tensor.backward` walks it.

    Attributes
    ----------
    parents : Sequence[ITensor]
        Differentiable inputs of the operation, in the order gradients are
        returned by `backward_fn`.
    backward_fn : Callable[[ITensor], Sequence[Optional[ITensor]]]
        Maps `grad_out` to one gradient (or None) per parent.
    saved_tensors : list[ITensor]
        Tensors captured for backward that are not themselves differentiated
        (e.g. segment ids, masks).
    saved_meta : dict[str, Any]
        Non-tensor metadata required for backward (axes, shapes, counts).
    op_name : str
        Name of the operation that created this record, for diagnostics.
    input_names : tuple[str, ...]
        Names of `parents`, aligned with them.
    """

    parents: Sequence["ITensor"]
    backward_fn: Callable[["ITensor"], Sequence[Optional["ITensor"]]]
    saved_tensors: list["ITensor"] = field(default_factory=list)
    saved_meta: dict[str, Any] = field(default_factory=dict)
    op_name: str = ""
    input_names: tuple[str, ...] = ()

    def save_for_backward(self, *tensors: "ITensor") -> None:
        """Append tensors to `saved_tensors`."""
        self.saved_tensors.extend(tensors)

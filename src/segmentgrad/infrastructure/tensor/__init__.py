from ._tensor_context import Context
from ._tensor import Tensor

__all__ = [Tensor.__name__, Context.__name__]

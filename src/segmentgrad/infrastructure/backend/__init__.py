"""
Kernel backends.

Importing this package registers the NumPy `CpuBackend` for CPU devices.
No CUDA backend ships with segmentgrad: CUDA tensors can be described but
any kernel dispatched for them raises `DeviceNotSupportedError`.
"""

from ...domain.device._device import DeviceType
from ._cpu_backend import CpuBackend
from ._registry import get_backend, register_backend, unregister_backend

register_backend(DeviceType.CPU, CpuBackend(), replace=True)

__all__ = [
    CpuBackend.__name__,
    get_backend.__name__,
    register_backend.__name__,
    unregister_backend.__name__,
]

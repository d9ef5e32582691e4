"""
Backend registry keyed by device type.

Backends register once per device family (CPU, CUDA, ...). The engine asks
the registry for the backend of its inputs' device; a device family with no
registered backend fails with `DeviceNotSupportedError` before any kernel
runs.
"""

from __future__ import annotations

import logging
from typing import Dict

from ...domain._backend import IBackend
from ...domain._errors import DeviceNotSupportedError
from ...domain.device._device_protocol import DeviceLike

logger = logging.getLogger(__name__)

_BACKENDS: Dict[object, IBackend] = {}


def register_backend(device_type: object, backend: IBackend, *, replace: bool = False) -> None:
    """
    Register `backend` as the kernel library for `device_type`.

    Parameters
    ----------
    device_type : DeviceType
        Device family served by the backend.
    backend : IBackend
        Kernel library.
    replace : bool, optional
        Allow overriding an existing registration. Defaults to False.

    Raises
    ------
    TypeError
        If `backend` does not satisfy `IBackend`.
    ValueError
        If a backend is already registered and `replace` is False.
    """
    if not isinstance(backend, IBackend):
        raise TypeError(f"{type(backend).__name__} does not implement IBackend")
    if device_type in _BACKENDS and not replace:
        raise ValueError(f"A backend is already registered for {device_type!r}")
    _BACKENDS[device_type] = backend
    logger.debug("registered backend %r for %r", backend.name, device_type)


def unregister_backend(device_type: object) -> None:
    """Remove the backend registered for `device_type`, if any."""
    _BACKENDS.pop(device_type, None)


def get_backend(device: DeviceLike, op: str = "kernel") -> IBackend:
    """
    Return the backend serving `device`.

    Raises
    ------
    DeviceNotSupportedError
        If no backend is registered for the device's type.
    """
    backend = _BACKENDS.get(device.type)
    if backend is None:
        raise DeviceNotSupportedError(op=op, device=str(device))
    return backend

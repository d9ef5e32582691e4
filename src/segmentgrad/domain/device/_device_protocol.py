"""
Duck-typed device contract.

Higher layers type against `DeviceLike` instead of the concrete `Device`
class, so the backend registry can key on `device.type` without importing
infrastructure code.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class DeviceLike(Protocol):
    """Any object exposing a device type, an optional index and predicates."""

    type: object
    index: Optional[int]

    def is_cpu(self) -> bool: ...
    def is_cuda(self) -> bool: ...
    def __str__(self) -> str: ...

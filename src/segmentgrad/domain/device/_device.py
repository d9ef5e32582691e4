"""
Device descriptors.

`Device` parses user-facing device strings ("cpu", "cuda:<index>") into a
hashable value used to pick a kernel backend. It allocates nothing and does
not know which backends are available; that is the backend registry's job.
"""

from enum import Enum
import re


class DeviceType(Enum):
    """Category of a computation device, independent of its index."""

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Concrete computation device descriptor.

    Parameters
    ----------
    device : str
        Either "cpu" or "cuda:<index>" where <index> is a non-negative integer.

    Raises
    ------
    ValueError
        If the device string does not match a supported format.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    def __str__(self) -> str:
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """Return True if this is the host CPU."""
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        """Return True if this is a CUDA GPU."""
        return self.type is DeviceType.CUDA

"""
Error taxonomy for segmentgrad.

Argument errors are raised before any kernel is dispatched and propagate
unchanged to the caller. Each class also subclasses the matching builtin
exception (`ValueError`, `TypeError` or `RuntimeError`).

Hierarchy
---------
- SegmentGradError
    - ValidationError (ValueError)
        - MissingTensorError (TypeError)
        - SegmentIdsDtypeError (TypeError)
        - NumSegmentsError (TypeError)
        - SegmentIdOutOfRangeError
    - ShapeMismatchError (ValueError)
    - AxisOutOfRangeError (ValueError)
    - DeviceNotSupportedError (RuntimeError)
    - DeviceMismatchError (RuntimeError)
"""

from typing import Optional


class SegmentGradError(Exception):
    """Base class of all errors raised by segmentgrad."""


class ValidationError(SegmentGradError, ValueError):
    """
    Raised when call arguments are malformed.

    Validation errors are never partially applied: they are raised before
    any kernel dispatch or gradient registration takes place.
    """


class MissingTensorError(ValidationError, TypeError):
    """
    Raised when a required tensor argument is missing or is not a Tensor.

    Attributes
    ----------
    arg_name : str
        Name of the offending argument.
    op : str
        Name of the operation being validated.
    """

    def __init__(self, arg_name: str, op: str, got: object = None) -> None:
        super().__init__(
            f"Argument '{arg_name}' passed to '{op}' must be a Tensor, "
            f"got {type(got).__name__}."
        )
        self.arg_name = arg_name
        self.op = op


class SegmentIdsDtypeError(ValidationError, TypeError):
    """Raised when segment ids (or gather indices) are not signed integers."""

    def __init__(self, dtype: object, op: str) -> None:
        super().__init__(
            f"'{op}' expects a signed integer index tensor, got dtype {dtype}."
        )
        self.dtype = dtype
        self.op = op


class NumSegmentsError(ValidationError, TypeError):
    """Raised when `num_segments` is not a non-negative integer."""

    def __init__(self, value: object) -> None:
        super().__init__(
            f"num_segments must be a non-negative int, got {value!r} "
            f"({type(value).__name__})."
        )
        self.value = value


class SegmentIdOutOfRangeError(ValidationError):
    """
    Raised when a segment id is greater than or equal to `num_segments`.

    Negative ids are valid (they exclude the slice from every segment);
    ids at or above `num_segments` have no output slot and are rejected.
    """

    def __init__(self, max_id: int, num_segments: int) -> None:
        super().__init__(
            f"segment id {max_id} is out of range for num_segments={num_segments}."
        )
        self.max_id = max_id
        self.num_segments = num_segments


class ShapeMismatchError(SegmentGradError, ValueError):
    """
    Raised when tensor shapes disagree with an operation's contract.

    Examples include segment ids whose length differs from the reduced
    axis, or an upstream gradient whose shape differs from the recorded
    forward output.
    """

    def __init__(
        self,
        message: str,
        expected: Optional[tuple] = None,
        got: Optional[tuple] = None,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.got = got


class AxisOutOfRangeError(SegmentGradError, ValueError):
    """Raised when an axis index lies outside `[0, rank)`."""

    def __init__(self, axis: object, rank: int) -> None:
        super().__init__(f"axis {axis!r} is out of range for rank {rank}.")
        self.axis = axis
        self.rank = rank


class DeviceNotSupportedError(SegmentGradError, RuntimeError):
    """
    Raised when an operation is requested on a device with no backend.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted.
    device : str
        String representation of the device.
    """

    def __init__(self, op: str, device: str) -> None:
        super().__init__(f"{op} is not implemented for device '{device}'.")
        self.op = op
        self.device = device


class DeviceMismatchError(SegmentGradError, RuntimeError):
    """Raised when the inputs of one operation live on different devices."""

    def __init__(self, device_a: str, device_b: str) -> None:
        super().__init__(f"Device mismatch: '{device_a}' vs '{device_b}'.")
        self.device_a = device_a
        self.device_b = device_b

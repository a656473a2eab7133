"""
Codec-specific exception classes.
"""


class CodecError(Exception):
    """Base class for all rowcodec errors.
    """


class EngineError(CodecError):
    """Failure reported by the underlying engine.

    Carries the formatted engine message and the original exception so that
    engine-specific exception types never reach application code.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class LogicError(CodecError):
    """Caller violated the codec contract.
    """


class UnsupportedTypeError(LogicError):
    """Typed value kind has no buffer encoding.
    """


class TypeConversionError(LogicError):
    """Column type cannot be converted to the requested type.
    """

    def __init__(self, actual: str, requested: str, message: str | None = None) -> None:
        super().__init__(message or f'Invalid conversion from type {actual} to {requested}')
        self.actual = actual
        self.requested = requested


class ColumnIndexError(LogicError, IndexError):
    """Column index outside the row.
    """


class StaleRowError(LogicError):
    """Row buffer was refilled or released after the field was handed out.
    """


class DescriptorError(LogicError):
    """Descriptor extents do not fit the buffer or a value does not fit its slot.
    """


class ValidationError(LogicError):
    """Error in input validation.
    """

"""
Error taxonomy for the parameter/object substrate.

Every error carries the declared type name of the owning object and the
parameter name (when known) so that messages read as ``Object::parameter``.
Each class also derives from the closest builtin exception so callers can
catch either the precise kind or the generic Python one.
"""

from typing import Optional


class ParameterKitError(Exception):
    """Base class for all errors raised by paramkit."""

    def __init__(self, message: str, object_name: Optional[str] = None, parameter_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.object_name = object_name
        self.parameter_name = parameter_name

    @property
    def location(self) -> str:
        """``Object::parameter`` style location, or whatever part is known."""
        if self.object_name and self.parameter_name:
            return f"{self.object_name}::{self.parameter_name}"
        return self.object_name or self.parameter_name or ""

    def __str__(self) -> str:
        return self.message


class TypeMismatch(ParameterKitError, TypeError):
    """Requested and actual types differ on get, put or cast."""

    def __init__(self, message: str, expected: str, actual: str, object_name: Optional[str] = None,
                 parameter_name: Optional[str] = None):
        super().__init__(message, object_name, parameter_name)
        self.expected = expected
        self.actual = actual


class ParameterNotFound(ParameterKitError, LookupError):
    """Unknown parameter name on get, put or run."""


class ConstraintViolation(ParameterKitError, ValueError):
    """A constraint rejected a candidate value."""

    def __init__(self, message: str, reason: str, object_name: Optional[str] = None,
                 parameter_name: Optional[str] = None):
        super().__init__(message, object_name, parameter_name)
        self.reason = reason


class NotCloneable(ParameterKitError, TypeError):
    """Clone attempted on a value whose type does not support deep copies."""


class InvalidOption(ParameterKitError, ValueError):
    """Unrecognised option string, or string put on a parameter without options."""


class PreconditionFailure(ParameterKitError, ValueError):
    """A required argument was missing or a call was made in an invalid state."""


class DuplicateParameter(PreconditionFailure):
    """A parameter with the same name is already registered."""


class ReadOnlyParameter(PreconditionFailure):
    """Attempt to write a parameter flagged READONLY."""


class ObjectDestroyed(PreconditionFailure):
    """Use of an object after its reference count reached zero."""


class SerializationError(ParameterKitError):
    """Persisted data is missing a parameter or cannot be converted back."""

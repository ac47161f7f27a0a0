"""
Type-erased single-value container with runtime type identity.

TypedValue remembers the static type a value was registered with and refuses to
hand the value out under any other type: types are compared by identity, never
by convertibility, so ``int`` is not ``bool`` and ``Vector[float]`` is not
``Vector[int]``.

The module also holds the value-level algorithms the object base builds on:
- clone_value(): deep copy for cloneable values, NotCloneable otherwise
- values_equal(): structural equality, nested objects compared recursively
- value_hash(): structural hash, nested objects hashed by their parameters

Nested BaseObjects are traversed with an identity-keyed memo so shared
sub-objects are cloned once and cyclic graphs terminate.
"""

from collections import defaultdict
from enum import Enum
import logging
import math
from typing import Any, Callable, Dict, Iterator, Optional

from paramkit.exceptions import NotCloneable, TypeMismatch
from paramkit.settings import get_settings
from paramkit.typed_containers import type_name_of

logger = logging.getLogger(__name__)

# Immutable scalars: a clone is the value itself
_ATOMIC_TYPES = (type(None), bool, int, float, complex, str, bytes, Enum)

_SEQUENCE_TYPES = (list, tuple, set, frozenset)

# Exact type -> clone function, for third-party value types (arrays, etc.)
_cloneables: Dict[type, Callable[[Any], Any]] = {}


def register_cloneable(value_type: type, clone_fn: Callable[[Any], Any]) -> None:
    """Declare a value type cloneable.

    Args:
        value_type: Type whose instances may be stored in parameters and cloned
        clone_fn: Function returning an independent deep copy of an instance
    """
    _cloneables[value_type] = clone_fn
    logger.debug(f"Registered cloneable type {type_name_of(value_type)}")


def unregister_cloneable(value_type: type) -> None:
    """Remove a type registered with register_cloneable()."""
    _cloneables.pop(value_type, None)


def _find_clone_fn(value_type: type) -> Optional[Callable[[Any], Any]]:
    for klass in value_type.__mro__:
        if klass in _cloneables:
            return _cloneables[klass]
    return None


def _is_object(value: Any) -> bool:
    from paramkit.base_object import BaseObject
    return isinstance(value, BaseObject)


def _new_memo() -> Optional[dict]:
    return {} if get_settings().detect_cycles else None


def _rebuild(original, items):
    """Construct a container of the same runtime type from new items."""
    if isinstance(original, tuple) and hasattr(original, '_fields'):
        return type(original)(*items)
    if isinstance(original, defaultdict):
        return type(original)(original.default_factory, dict(items))
    if isinstance(original, dict):
        return type(original)(dict(items))
    return type(original)(items)


# =============================================================================
# CLONE / EQUALITY / HASH
# =============================================================================

def is_cloneable(value: Any) -> bool:
    """Check whether clone_value() would succeed, without copying anything."""
    if isinstance(value, _ATOMIC_TYPES) or _is_object(value):
        return True
    if isinstance(value, dict):
        return all(is_cloneable(k) and is_cloneable(v) for k, v in value.items())
    if isinstance(value, _SEQUENCE_TYPES):
        return all(is_cloneable(item) for item in value)
    return _find_clone_fn(type(value)) is not None


def iter_objects(value: Any) -> Iterator[Any]:
    """Yield the BaseObjects held directly by a value or by containers inside it.

    Objects are not descended into; each object owns its own parameters.
    """
    if _is_object(value):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_objects(item)
    elif isinstance(value, _SEQUENCE_TYPES):
        for item in value:
            yield from iter_objects(item)


def clone_value(value: Any, memo: Optional[dict] = None) -> Any:
    """Return an independent deep copy of a cloneable value.

    Args:
        value: Value to copy
        memo: Identity-keyed map of already-cloned objects (shared across one
              clone operation so shared sub-objects stay shared in the copy)

    Raises:
        NotCloneable: if the value (or anything inside it) is not cloneable
    """
    if isinstance(value, _ATOMIC_TYPES):
        return value
    if _is_object(value):
        return value._clone_graph({} if memo is None else memo)
    if isinstance(value, dict):
        return _rebuild(value, ((clone_value(k, memo), clone_value(v, memo)) for k, v in value.items()))
    if isinstance(value, _SEQUENCE_TYPES):
        return _rebuild(value, [clone_value(item, memo) for item in value])

    clone_fn = _find_clone_fn(type(value))
    if clone_fn is None:
        raise NotCloneable(f"Value of type {type_name_of(type(value))} is not cloneable.")
    return clone_fn(value)


def values_equal(first: Any, second: Any, memo: Optional[dict] = None) -> bool:
    """Structural equality: same runtime types and component-wise equal contents."""
    if first is second:
        return True
    if type(first) is not type(second):
        return False
    if _is_object(first):
        return first._equals_graph(second, memo)
    if isinstance(first, dict):
        if first.keys() != second.keys():
            return False
        return all(values_equal(first[k], second[k], memo) for k in first)
    if isinstance(first, (list, tuple)):
        if len(first) != len(second):
            return False
        return all(values_equal(a, b, memo) for a, b in zip(first, second))
    if isinstance(first, float) and math.isnan(first) and math.isnan(second):
        return True
    return bool(first == second)


def value_hash(value: Any, memo: Optional[dict] = None) -> int:
    """Structural hash consistent with values_equal().

    Unhashable values that are neither containers nor objects hash by identity.
    """
    if _is_object(value):
        return value._hash_graph(memo)
    if isinstance(value, dict):
        return hash((type_name_of(type(value)), frozenset(
            (value_hash(k, memo), value_hash(v, memo)) for k, v in value.items()
        )))
    if isinstance(value, (list, tuple)):
        return hash((type_name_of(type(value)), tuple(value_hash(item, memo) for item in value)))
    if isinstance(value, (set, frozenset)):
        return hash((type_name_of(type(value)), frozenset(value_hash(item, memo) for item in value)))
    if isinstance(value, float) and math.isnan(value):
        return hash('nan')
    # hash(-1) == hash(-2) in CPython, which would hide a write between them
    if type(value) is int:
        return hash(('int', str(value)))
    if type(value) is float:
        return hash(('float', (value + 0.0).hex()))
    try:
        return hash(value)
    except TypeError:
        return id(value)


# =============================================================================
# TYPED VALUE
# =============================================================================

class TypedValue:
    """
    Holds exactly one value together with the static type it was declared as.

    The declared type defaults to ``type(value)``. Declaring a base class (for
    example ``Kernel`` for a parameter that may hold any kernel subclass, or
    ``None`` while unset) is allowed as long as the value is an instance of it.
    """

    __slots__ = ('_value', '_value_type')

    def __init__(self, value: Any, value_type: Optional[type] = None):
        if value_type is None:
            value_type = type(value)
        elif value is not None and not isinstance(value, value_type):
            raise TypeMismatch(
                f"Cannot store value of type {type_name_of(type(value))} as {type_name_of(value_type)}.",
                expected=type_name_of(value_type),
                actual=type_name_of(type(value)),
            )
        self._value = value
        self._value_type = value_type

    @classmethod
    def make(cls, value: Any, value_type: Optional[type] = None) -> 'TypedValue':
        """Wrap a value, recording its static type."""
        return cls(value, value_type)

    @property
    def value(self) -> Any:
        return self._value

    @property
    def value_type(self) -> type:
        return self._value_type

    @property
    def type_name(self) -> str:
        return type_name_of(self._value_type)

    def has_type(self, expected_type: type) -> bool:
        """Non-throwing check for exact static type identity."""
        return expected_type is self._value_type

    def extract(self, expected_type: type, object_name: Optional[str] = None,
                parameter_name: Optional[str] = None) -> Any:
        """Return the value if it was stored as exactly ``expected_type``.

        Raises:
            TypeMismatch: naming the requested and the actual type
        """
        if expected_type is not self._value_type:
            location = f" {object_name}::{parameter_name}" if object_name and parameter_name else ""
            raise TypeMismatch(
                f"Cannot extract{location} of type {self.type_name} as requested type "
                f"{type_name_of(expected_type)}.",
                expected=type_name_of(expected_type),
                actual=self.type_name,
                object_name=object_name,
                parameter_name=parameter_name,
            )
        return self._value

    @property
    def cloneable(self) -> bool:
        return is_cloneable(self._value)

    def clone(self, memo: Optional[dict] = None) -> 'TypedValue':
        """Deep copy of the contained value under the same static type.

        Raises:
            NotCloneable: if the contained value does not support deep copies
        """
        if memo is None:
            memo = {}
        return TypedValue(clone_value(self._value, memo), self._value_type)

    def equals(self, other: 'TypedValue', memo: Optional[dict] = None) -> bool:
        if not isinstance(other, TypedValue) or other._value_type is not self._value_type:
            return False
        if memo is None:
            memo = _new_memo()
        return values_equal(self._value, other._value, memo)

    def hash(self, memo: Optional[dict] = None) -> int:
        if memo is None:
            memo = _new_memo()
        return hash((self.type_name, value_hash(self._value, memo)))

    def __repr__(self) -> str:
        return f"TypedValue[{self.type_name}]({self._value!r})"

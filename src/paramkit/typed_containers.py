"""
Reified typed containers - element types preserved at runtime.

Vectors, matrices and maps carry their element types in their runtime type, so
``Vector[float]`` and ``Vector[int]`` are distinct types that TypedValue can tell
apart by identity alone.

Core concepts:
- ReifiedMeta: Metaclass holding __origin__/__args__ for parameterised types
- Type caching: the same parameterisation always returns the same type object
- Metadata only: element values are never inspected

Usage:
    from paramkit.typed_containers import Vector, Matrix, Map

    weights = Vector[float]([0.5, 1.5])
    type(weights) is Vector[float]     # True
    type(weights) is Vector[int]       # False
    kernel = Matrix[float]([[1.0, 0.0], [0.0, 1.0]])
    kernel.shape                       # (2, 2)
"""

from typing import Dict, Tuple, Any
import logging

logger = logging.getLogger(__name__)

# =============================================================================
# TYPE CACHE
# =============================================================================

_reified_cache: Dict[Tuple[type, tuple], type] = {}


def _make_reified_type(origin: type, args: tuple) -> type:
    """Get or create the reified type for origin[args]."""
    key = (origin, args)
    cached = _reified_cache.get(key)
    if cached is not None:
        return cached

    type_name = f"{origin.__name__}[{', '.join(type_name_of(arg) for arg in args)}]"
    reified_type = ReifiedMeta(
        type_name,
        (origin,),
        {
            '__origin__': origin,
            '__args__': args,
            '__reified__': True,
            '__module__': origin.__module__,
        }
    )
    _reified_cache[key] = reified_type
    logger.debug(f"Created reified type {type_name}")
    return reified_type


# =============================================================================
# REIFIED METACLASS
# =============================================================================

class ReifiedMeta(type):
    """
    Metaclass for parameterised container types.

    isinstance() only accepts instances constructed through the exact
    parameterisation; a plain list is not a Vector[float].
    """

    def __instancecheck__(cls, instance: Any) -> bool:
        inst_type = type(instance)
        if inst_type is cls:
            return True
        origin = getattr(inst_type, '__origin__', None)
        return origin is cls.__origin__ and getattr(inst_type, '__args__', None) == cls.__args__

    def __repr__(cls) -> str:
        return cls.__name__

    def __reduce__(cls):
        return _make_reified_type, (cls.__origin__, cls.__args__)


# =============================================================================
# CONTAINERS
# =============================================================================

class Vector(list):
    """
    One-dimensional sequence with a reified element type.

    Usage:
        v = Vector[float]([1.0, 2.0])
        type(v).__args__  # (float,)
    """
    __origin__ = list
    __args__: tuple = ()
    __reified__ = False

    def __class_getitem__(cls, params):
        if not isinstance(params, tuple):
            params = (params,)
        return _make_reified_type(Vector, params)

    @property
    def element_type(self) -> type:
        return type(self).__args__[0] if type(self).__args__ else object

    def __repr__(self):
        return f"{type(self)!r}({super().__repr__()})"


class Matrix(list):
    """
    Two-dimensional row-major matrix with a reified element type.

    Rows are stored as plain lists; all rows must have the same length.
    """
    __origin__ = list
    __args__: tuple = ()
    __reified__ = False

    def __class_getitem__(cls, params):
        if not isinstance(params, tuple):
            params = (params,)
        return _make_reified_type(Matrix, params)

    def __init__(self, rows=()):
        super().__init__(list(row) for row in rows)
        widths = {len(row) for row in self}
        if len(widths) > 1:
            raise ValueError(f"{type(self)!r} rows have inconsistent lengths {sorted(widths)}")

    @property
    def shape(self) -> Tuple[int, int]:
        return (len(self), len(self[0]) if self else 0)

    @property
    def element_type(self) -> type:
        return type(self).__args__[0] if type(self).__args__ else object

    def __repr__(self):
        return f"{type(self)!r}({super().__repr__()})"


class Map(dict):
    """Mapping with reified key and value types."""
    __origin__ = dict
    __args__: tuple = ()
    __reified__ = False

    def __class_getitem__(cls, params):
        if not isinstance(params, tuple):
            params = (params,)
        return _make_reified_type(Map, params)

    def __repr__(self):
        return f"{type(self)!r}({super().__repr__()})"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def is_reified(t: type) -> bool:
    """Check if a type is a parameterised container type."""
    return getattr(t, '__reified__', False) is True


def get_element_types(t: type) -> tuple:
    """Get type arguments from a reified type."""
    return getattr(t, '__args__', ())


def get_origin_type(t: type) -> type:
    """Get the unparameterised container class (Vector, Matrix, Map)."""
    return t.__origin__ if is_reified(t) else t


def reified_from_name(origin_name: str, args: tuple) -> type:
    """Rebuild a reified type from its container name and argument types."""
    origins = {'Vector': Vector, 'Matrix': Matrix, 'Map': Map}
    if origin_name not in origins:
        raise KeyError(f"Unknown container type '{origin_name}'")
    return _make_reified_type(origins[origin_name], tuple(args))


def type_name_of(t: Any) -> str:
    """Readable name for diagnostics: ``Vector[float]``, ``int``, ``Kernel``."""
    if is_reified(t):
        return t.__name__
    return getattr(t, '__name__', None) or repr(t)


def clear_cache() -> None:
    """Clear the reified type cache (for testing)."""
    _reified_cache.clear()

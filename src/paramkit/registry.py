"""
Per-object parameter registry.

Maps parameter names to ParameterDescriptors. A descriptor owns the metadata of
one parameter (description, property flags, optional constraint, optional
AutoInit, update callbacks) and a value holder:

- OwnedValue:    the registry stores the value itself in a TypedValue
- AttributeRef:  the value lives in an attribute of the owning object; the
                 owner is referenced weakly so a descriptor never keeps its
                 object alive
- MethodValue:   a bound method evaluated on every read (READONLY), or a
                 mutating function that may only be invoked through run()

Writes go through ParameterRegistry.update(), which enforces the static type,
runs the constraint, and keeps reference counts of nested objects balanced:
objects in the new value are ref'd before the old value's objects are unref'd.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
import logging
import weakref
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from paramkit.any_value import TypedValue, iter_objects
from paramkit.auto_init import AutoInit
from paramkit.constraint import Constraint
from paramkit.exceptions import (
    ConstraintViolation,
    DuplicateParameter,
    ObjectDestroyed,
    ParameterNotFound,
    PreconditionFailure,
    ReadOnlyParameter,
    TypeMismatch,
)
from paramkit.properties import ParameterProperties
from paramkit.tag import BaseTag, Tag, tag_name
from paramkit.typed_containers import type_name_of

logger = logging.getLogger(__name__)

Key = Union[str, BaseTag]


# =============================================================================
# VALUE HOLDERS
# =============================================================================

class OwnedValue:
    """Value stored inside the registry."""

    def __init__(self, typed_value: TypedValue):
        self._typed = typed_value

    @property
    def value_type(self) -> type:
        return self._typed.value_type

    def get_value(self) -> Any:
        return self._typed.value

    def set_value(self, value: Any) -> None:
        self._typed = TypedValue(value, self._typed.value_type)


class AttributeRef:
    """Value stored in an attribute of the owning object."""

    def __init__(self, owner: Any, attribute: str, value_type: type):
        self._owner = weakref.ref(owner)
        self._attribute = attribute
        self._value_type = value_type

    @property
    def attribute(self) -> str:
        return self._attribute

    @property
    def value_type(self) -> type:
        return self._value_type

    def _resolve_owner(self) -> Any:
        owner = self._owner()
        if owner is None:
            raise ObjectDestroyed(f"Owner of attribute '{self._attribute}' no longer exists.")
        return owner

    def get_value(self) -> Any:
        return getattr(self._resolve_owner(), self._attribute)

    def set_value(self, value: Any) -> None:
        setattr(self._resolve_owner(), self._attribute, value)


class MethodValue:
    """Function parameter; reads evaluate the function."""

    def __init__(self, function: Callable[[], Any], value_type: type):
        self._function = function
        self._value_type = value_type

    @property
    def value_type(self) -> type:
        return self._value_type

    @property
    def function(self) -> Callable[[], Any]:
        return self._function

    def get_value(self) -> Any:
        return self._function()

    def set_value(self, value: Any) -> None:
        raise ReadOnlyParameter("Function parameters cannot be assigned.")


# =============================================================================
# DESCRIPTOR
# =============================================================================

@dataclass
class ParameterDescriptor:
    """Metadata and storage of one named parameter."""
    name: str
    holder: Union[OwnedValue, AttributeRef, MethodValue]
    description: str = ""
    properties: ParameterProperties = ParameterProperties.NONE
    constraint: Optional[Constraint] = None
    auto_init: Optional[AutoInit] = None
    callbacks: List[Callable[[], None]] = field(default_factory=list)

    @property
    def value(self) -> Any:
        return self.holder.get_value()

    @property
    def value_type(self) -> type:
        return self.holder.value_type

    @property
    def is_function(self) -> bool:
        return isinstance(self.holder, MethodValue)

    def has_property(self, flag: ParameterProperties) -> bool:
        return self.properties.has(flag)

    def typed_value(self) -> TypedValue:
        """Current value wrapped with its static type."""
        return TypedValue(self.holder.get_value(), self.holder.value_type)

    def __repr__(self) -> str:
        return (f"ParameterDescriptor(name={self.name!r}, type={type_name_of(self.value_type)}, "
                f"properties={self.properties})")


# =============================================================================
# REGISTRY
# =============================================================================

def _is_object_type(value_type: type) -> bool:
    from paramkit.base_object import BaseObject
    return isinstance(value_type, type) and issubclass(value_type, BaseObject)


def conforms(value: Any, value_type: type) -> bool:
    """Whether ``value`` may be stored in a parameter declared as ``value_type``.

    Object parameters accept any subclass instance and None (an empty handle);
    every other parameter requires the exact runtime type.
    """
    if _is_object_type(value_type):
        return value is None or isinstance(value, value_type)
    return type(value) is value_type


def _ref_objects(value: Any) -> None:
    for obj in iter_objects(value):
        obj.ref()


def _unref_objects(value: Any) -> None:
    for obj in iter_objects(value):
        obj.unref()


class ParameterRegistry:
    """Name → ParameterDescriptor mapping of a single object.

    Thread safety: Not thread-safe. Writes to one object's parameters must be
    serialised by the caller.
    """

    def __init__(self, owner_name: Callable[[], str] = lambda: "Object"):
        """
        Args:
            owner_name: Returns the declared type name of the owning object,
                        used in every error message
        """
        self._owner_name = owner_name
        self._parameters: Dict[str, ParameterDescriptor] = {}

    # ========== LOOKUP ==========

    def _location(self, name: str) -> str:
        return f"{self._owner_name()}::{name}"

    def _not_found(self, name: str) -> ParameterNotFound:
        return ParameterNotFound(
            f"Parameter {self._location(name)} does not exist.",
            object_name=self._owner_name(),
            parameter_name=name,
        )

    def create(self, key: Key, descriptor: ParameterDescriptor) -> ParameterDescriptor:
        """Insert a new parameter.

        Raises:
            DuplicateParameter: if the name is already registered
        """
        name = tag_name(key)
        if name in self._parameters:
            raise DuplicateParameter(
                f"Parameter {self._location(name)} is already registered.",
                object_name=self._owner_name(),
                parameter_name=name,
            )
        self._parameters[name] = descriptor
        logger.debug(f"Registered parameter {self._location(name)} "
                     f"type={type_name_of(descriptor.value_type)} properties={descriptor.properties}")
        return descriptor

    def has(self, key: Key, value_type: Optional[type] = None) -> bool:
        """Check existence, and the static type if one is given (directly or via a Tag)."""
        name = tag_name(key)
        if value_type is None and isinstance(key, Tag):
            value_type = key.value_type
        descriptor = self._parameters.get(name)
        if descriptor is None:
            return False
        return value_type is None or descriptor.value_type is value_type

    def get(self, key: Key) -> ParameterDescriptor:
        """Return the descriptor.

        Raises:
            ParameterNotFound: if no parameter has this name
        """
        name = tag_name(key)
        descriptor = self._parameters.get(name)
        if descriptor is None:
            raise self._not_found(name)
        return descriptor

    def get_value(self, key: Key, value_type: Optional[type] = None) -> Any:
        """Read a value, type-checked when a Tag or ``value_type`` is given."""
        descriptor = self.get(key)
        if descriptor.has_property(ParameterProperties.RUNFUNCTION):
            raise PreconditionFailure(
                f"Parameter {self._location(descriptor.name)} is a function; use run().",
                object_name=self._owner_name(),
                parameter_name=descriptor.name,
            )
        if value_type is None and isinstance(key, Tag):
            value_type = key.value_type
        if value_type is None:
            return descriptor.value
        return self._check_type(descriptor, value_type, "get").extract(
            value_type, self._owner_name(), descriptor.name)

    def _check_type(self, descriptor: ParameterDescriptor, requested: type, verb: str) -> TypedValue:
        typed = descriptor.typed_value()
        if not typed.has_type(requested):
            raise TypeMismatch(
                f"Cannot {verb} parameter {self._location(descriptor.name)} of type {typed.type_name}, "
                f"incompatible requested type {type_name_of(requested)}.",
                expected=type_name_of(requested),
                actual=typed.type_name,
                object_name=self._owner_name(),
                parameter_name=descriptor.name,
            )
        return typed

    # ========== MUTATION ==========

    def update(self, key: Key, value: Any, value_type: Optional[type] = None, cancel_auto: bool = True) -> None:
        """Type-check, validate and commit a new value.

        Args:
            key: Name, BaseTag or Tag of the parameter
            value: New value
            value_type: Expected static type (taken from the Tag if omitted)
            cancel_auto: Drop a pending AutoInit, since the value is now user-set

        Raises:
            ParameterNotFound: unknown name
            TypeMismatch: requested type or value does not match the stored type
            ConstraintViolation: the constraint rejected the value (old value kept)
        """
        descriptor = self.get(key)
        name = descriptor.name
        if descriptor.is_function:
            raise ReadOnlyParameter(
                f"Cannot put function parameter {self._location(name)}.",
                object_name=self._owner_name(),
                parameter_name=name,
            )

        if value_type is None and isinstance(key, Tag):
            value_type = key.value_type
        if value_type is not None:
            self._check_type(descriptor, value_type, "put")
        if not conforms(value, descriptor.value_type):
            raise TypeMismatch(
                f"Cannot put parameter {self._location(name)} of type {type_name_of(descriptor.value_type)}, "
                f"incompatible provided type {type_name_of(type(value))}.",
                expected=type_name_of(descriptor.value_type),
                actual=type_name_of(type(value)),
                object_name=self._owner_name(),
                parameter_name=name,
            )

        if descriptor.constraint is not None and descriptor.has_property(ParameterProperties.CONSTRAIN):
            reason = descriptor.constraint(value)
            if reason:
                raise ConstraintViolation(
                    f"{self._location(name)}: {reason}",
                    reason=reason,
                    object_name=self._owner_name(),
                    parameter_name=name,
                )

        old_value = descriptor.holder.get_value()
        _ref_objects(value)
        descriptor.holder.set_value(value)
        _unref_objects(old_value)

        if cancel_auto and descriptor.auto_init is not None:
            logger.debug(f"User value cancels auto initialisation of {self._location(name)}")
            descriptor.auto_init = None

        for callback in list(descriptor.callbacks):
            callback()

    def add_callback(self, key: Key, callback: Callable[[], None]) -> None:
        """Call ``callback`` after every successful update of a parameter."""
        self.get(key).callbacks.append(callback)

    def run(self, key: Key) -> None:
        """Invoke a RUNFUNCTION parameter.

        Raises:
            ParameterNotFound: unknown name
            PreconditionFailure: not a run function, or it signalled failure
        """
        descriptor = self.get(key)
        name = descriptor.name
        if not descriptor.is_function or not descriptor.has_property(ParameterProperties.RUNFUNCTION):
            raise PreconditionFailure(
                f"Parameter {self._location(name)} is not a run function.",
                object_name=self._owner_name(),
                parameter_name=name,
            )
        result = descriptor.holder.function()
        if result is False:
            raise PreconditionFailure(
                f"Failed to run function {self._location(name)}",
                object_name=self._owner_name(),
                parameter_name=name,
            )

    # ========== ENUMERATION ==========

    def get_params(self) -> Mapping[str, ParameterDescriptor]:
        """Read-only name → descriptor mapping."""
        return MappingProxyType(self._parameters)

    def names(self) -> List[str]:
        return list(self._parameters)

    def filter(self, mask: ParameterProperties) -> 'RegistryView':
        """Non-owning view of parameters whose flags intersect ``mask``."""
        return RegistryView(self, mask)

    def hyper(self) -> 'RegistryView':
        return self.filter(ParameterProperties.HYPER)

    def gradient(self) -> 'RegistryView':
        return self.filter(ParameterProperties.GRADIENT)

    def model(self) -> 'RegistryView':
        return self.filter(ParameterProperties.MODEL)

    def __contains__(self, key: Key) -> bool:
        return tag_name(key) in self._parameters

    def __iter__(self) -> Iterator[ParameterDescriptor]:
        return iter(list(self._parameters.values()))

    def __len__(self) -> int:
        return len(self._parameters)


class RegistryView:
    """Live, filtered, read-only view over a ParameterRegistry."""

    def __init__(self, registry: ParameterRegistry, mask: ParameterProperties):
        self._registry = registry
        self._mask = mask

    @property
    def mask(self) -> ParameterProperties:
        return self._mask

    def _selected(self) -> Dict[str, ParameterDescriptor]:
        return {d.name: d for d in self._registry if d.properties.matches(self._mask)}

    def get_params(self) -> Mapping[str, ParameterDescriptor]:
        return MappingProxyType(self._selected())

    def names(self) -> List[str]:
        return list(self._selected())

    def get(self, key: Key) -> ParameterDescriptor:
        name = tag_name(key)
        if name not in self:
            raise ParameterNotFound(
                f"Parameter {self._registry._location(name)} is not in the {self._mask} view.",
                object_name=self._registry._owner_name(),
                parameter_name=name,
            )
        return self._registry.get(name)

    def __contains__(self, key: Key) -> bool:
        name = tag_name(key)
        return name in self._registry and self._registry.get(name).properties.matches(self._mask)

    def __iter__(self) -> Iterator[ParameterDescriptor]:
        return iter(self._selected().values())

    def __len__(self) -> int:
        return len(self._selected())

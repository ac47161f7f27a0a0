"""
BaseObject: the introspectable, reference-counted base of every domain object.

A subclass registers its parameters once, in its constructor, through explicit
builder calls. Everything generic is then derived from the registry:

- typed get/put/has/run by name or Tag, with enum option strings
- deep clone and structural equality by registry traversal
- a combined parameter hash for cheap change detection
- serialization lifecycle around an external reader/writer
- an observation channel for streaming parameter snapshots

Example:
    class GaussianKernel(BaseObject):
        def __init__(self, width: float = 1.0):
            super().__init__()
            self.width = width
            self.watch_param('width', description="Kernel width",
                             properties=ParameterProperties.HYPER,
                             constraint=positive())

    kernel = GaussianKernel()
    kernel.put('width', 2.0)
    kernel.get('width')                  # 2.0
    kernel.get(Tag('width', int))        # TypeMismatch
    kernel.clone().equals(kernel)        # True

Ownership:
    A new object starts with a reference count of 1, held by its creator.
    put() and add() take an additional reference on every object they store and
    release the reference on the value they replace. Values present when a
    parameter is registered are adopted without an extra reference. When the
    count reaches zero the object releases everything it holds and can no
    longer be used. Python's garbage collector still owns the memory; the count
    tracks logical ownership for shared components and bindings.
"""

import inspect
import logging
import threading
import weakref
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, TypeVar, Union

from paramkit.any_value import TypedValue, iter_objects
from paramkit.auto_init import AutoInit
from paramkit.constraint import as_constraint
from paramkit.enum_map import StringEnumMap
from paramkit.exceptions import (
    NotCloneable,
    ObjectDestroyed,
    PreconditionFailure,
    ReadOnlyParameter,
    SerializationError,
    TypeMismatch,
)
from paramkit.observation import ObservationChannel, ObservedValue, ParameterObserver
from paramkit.properties import ParameterProperties
from paramkit.registry import (
    AttributeRef,
    MethodValue,
    OwnedValue,
    ParameterDescriptor,
    ParameterRegistry,
    RegistryView,
    conforms,
)
from paramkit.settings import get_settings
from paramkit.tag import BaseTag, Tag, tag_name
from paramkit.typed_containers import is_reified, get_element_types, type_name_of

logger = logging.getLogger(__name__)

T = TypeVar('T', bound='BaseObject')
Key = Union[str, BaseTag]


class ObjectFactory:
    """Registry of concrete BaseObject classes by name.

    Populated automatically by BaseObject.__init_subclass__; used to create empty
    instances when deserializing nested objects.
    """
    _classes: Dict[str, Type['BaseObject']] = {}

    @classmethod
    def register(cls, klass: Type['BaseObject'], name: Optional[str] = None) -> None:
        key = name or klass.__name__
        if key in cls._classes and cls._classes[key] is not klass:
            logger.warning(f"Overwriting registered object class: {key}")
        cls._classes[key] = klass

    @classmethod
    def unregister(cls, name: str) -> None:
        cls._classes.pop(name, None)

    @classmethod
    def get_class(cls, name: str) -> Type['BaseObject']:
        klass = cls._classes.get(name)
        if klass is None:
            raise PreconditionFailure(f"Class {name} is not registered with the object factory.",
                                      object_name=name)
        return klass

    @classmethod
    def create(cls, name: str) -> 'BaseObject':
        """Create an empty instance of a registered class."""
        return cls.get_class(name).create_empty_of_type()

    @classmethod
    def available(cls) -> List[str]:
        return sorted(cls._classes)


class BaseObject:
    """Base class of all introspectable objects. See module docstring."""

    def __init_subclass__(cls, register: bool = True, **kwargs):
        super().__init_subclass__(**kwargs)
        if register:
            ObjectFactory.register(cls)

    def __init__(self):
        self._refcount = 1
        self._refcount_lock = threading.Lock()
        self._destroyed = False

        self._parameters = ParameterRegistry(self.get_name)
        self._string_to_enum = StringEnumMap(self.get_name)
        self._channel = ObservationChannel(self.get_name)
        self._observables: Dict[str, str] = {}
        self._default_mask = ParameterProperties.NONE

        self._hash = 0
        self._generic: Optional[type] = None

        self._load_pre_called = False
        self._load_post_called = False
        self._save_pre_called = False
        self._save_post_called = False

    def get_name(self) -> str:
        """Declared type name used in messages and by the object factory."""
        return type(self).__name__

    # ========== REFERENCE COUNTING ==========

    def ref(self) -> int:
        """Increment the reference count and return it."""
        with self._refcount_lock:
            self._check_alive()
            self._refcount += 1
            return self._refcount

    def unref(self) -> int:
        """Decrement the reference count; at zero, release the object.

        Returns:
            Remaining count. Callers holding a handle must drop it on zero.
        """
        with self._refcount_lock:
            self._check_alive()
            self._refcount -= 1
            remaining = self._refcount
            if remaining == 0:
                self._destroyed = True
        if remaining == 0:
            self._release()
        return remaining

    def ref_count(self) -> int:
        return self._refcount

    def is_destroyed(self) -> bool:
        return self._destroyed

    def weak(self) -> 'weakref.ReferenceType[BaseObject]':
        """Non-owning handle for back-references (parent links and the like)."""
        return weakref.ref(self)

    def _check_alive(self) -> None:
        if self._destroyed:
            raise ObjectDestroyed(f"{self.get_name()} was used after its reference count reached zero.",
                                  object_name=self.get_name())

    def _release(self) -> None:
        logger.debug(f"Destroying {self.get_name()} (id={id(self):#x})")
        self._channel.complete()
        self._channel.clear()
        for descriptor in self._parameters:
            if descriptor.is_function:
                continue
            for obj in iter_objects(descriptor.value):
                if not obj.is_destroyed():
                    obj.unref()
        self.on_destroy()

    def on_destroy(self) -> None:
        """Hook called once when the reference count reaches zero."""

    # ========== REGISTRATION ==========

    def set_default_mask(self, mask: ParameterProperties) -> 'BaseObject':
        """Flags OR-ed into every parameter registered afterwards."""
        self._default_mask = mask
        return self

    def _build_properties(self, properties: ParameterProperties, constraint, auto_init,
                          name: str) -> ParameterProperties:
        properties = properties | self._default_mask
        if constraint is not None and not properties.has(ParameterProperties.CONSTRAIN):
            raise PreconditionFailure(f"Expected {self.get_name()}::{name} to have ParameterProperties.CONSTRAIN",
                                      object_name=self.get_name(), parameter_name=name)
        if auto_init is not None and not properties.has(ParameterProperties.AUTO):
            raise PreconditionFailure(f"Expected {self.get_name()}::{name} to have ParameterProperties.AUTO",
                                      object_name=self.get_name(), parameter_name=name)
        return properties

    def _resolve_value_type(self, name: str, value: Any, value_type: Optional[type]) -> type:
        if value_type is None:
            if value is None:
                raise PreconditionFailure(
                    f"Cannot infer the type of {self.get_name()}::{name} from None; pass value_type.",
                    object_name=self.get_name(), parameter_name=name)
            return type(value)
        if value is not None and not conforms(value, value_type):
            raise TypeMismatch(
                f"Initial value of {self.get_name()}::{name} has type {type_name_of(type(value))}, "
                f"expected {type_name_of(value_type)}.",
                expected=type_name_of(value_type), actual=type_name_of(type(value)),
                object_name=self.get_name(), parameter_name=name)
        return value_type

    def register_param(self, name: str, value: Any, description: str = "",
                       properties: ParameterProperties = ParameterProperties.NONE,
                       constraint=None, auto_init: Optional[AutoInit] = None,
                       value_type: Optional[type] = None) -> 'BaseObject':
        """Register a parameter whose value is stored in the registry.

        Args:
            name: Parameter name, unique per object
            value: Initial value (adopted, not ref'd)
            description: User-facing description
            properties: Property flags (the default mask is added)
            constraint: Constraint, rule or list of rules (requires CONSTRAIN)
            auto_init: Lazy initializer (requires AUTO)
            value_type: Static type; defaults to type(value)

        Returns:
            self, so registrations can be chained
        """
        constraint = as_constraint(constraint)
        properties = self._build_properties(properties, constraint, auto_init, name)
        value_type = self._resolve_value_type(name, value, value_type)
        self._parameters.create(name, ParameterDescriptor(
            name=name,
            holder=OwnedValue(TypedValue(value, value_type)),
            description=description,
            properties=properties,
            constraint=constraint,
            auto_init=auto_init,
        ))
        return self

    def watch_param(self, attribute: str, name: Optional[str] = None, description: str = "",
                    properties: ParameterProperties = ParameterProperties.NONE,
                    constraint=None, auto_init: Optional[AutoInit] = None,
                    value_type: Optional[type] = None) -> 'BaseObject':
        """Register an existing attribute of this object as a parameter.

        The attribute stays the storage: methods keep using ``self.<attribute>``
        and the registry reads and writes it through a weak reference.

        Args:
            attribute: Attribute name on self
            name: Parameter name (defaults to the attribute name)
            (other arguments as in register_param)
        """
        name = name or attribute
        constraint = as_constraint(constraint)
        properties = self._build_properties(properties, constraint, auto_init, name)
        value_type = self._resolve_value_type(name, getattr(self, attribute), value_type)
        self._parameters.create(name, ParameterDescriptor(
            name=name,
            holder=AttributeRef(self, attribute, value_type),
            description=description,
            properties=properties,
            constraint=constraint,
            auto_init=auto_init,
        ))
        return self

    def watch_method(self, name: str, method: Callable[[], Any], value_type: Optional[type] = None,
                     description: str = "Dynamic parameter") -> 'BaseObject':
        """Expose a side-effect-free method as a READONLY parameter.

        ``get(name)`` evaluates the method; the static type is taken from its
        return annotation unless ``value_type`` is given.
        """
        if value_type is None:
            value_type = inspect.signature(method).return_annotation
            if value_type is inspect.Signature.empty or not isinstance(value_type, type):
                raise PreconditionFailure(
                    f"Cannot infer the return type of {self.get_name()}::{name}; pass value_type.",
                    object_name=self.get_name(), parameter_name=name)
        self._parameters.create(name, ParameterDescriptor(
            name=name,
            holder=MethodValue(method, value_type),
            description=description,
            properties=ParameterProperties.READONLY,
        ))
        return self

    def watch_run(self, name: str, method: Callable[[], bool],
                  description: str = "Non-const function") -> 'BaseObject':
        """Expose a mutating method that can only be invoked through run()."""
        self._parameters.create(name, ParameterDescriptor(
            name=name,
            holder=MethodValue(method, bool),
            description=description,
            properties=ParameterProperties.RUNFUNCTION | ParameterProperties.READONLY,
        ))
        return self

    def add_callback_function(self, name: str, callback: Callable[[], None]) -> 'BaseObject':
        """Call ``callback`` after every successful write of a parameter."""
        self._parameters.add_callback(name, callback)
        return self

    def add_option(self, name: str, option: str, code: int) -> 'BaseObject':
        """Map an option string to an integer code for an int parameter."""
        self._string_to_enum.add(name, option, code)
        return self

    def register_observable(self, name: str, description: str = "") -> 'BaseObject':
        """Declare a name this object may emit through observe_value()."""
        self._observables[name] = description
        return self

    def init_auto_params(self) -> None:
        """Compute every AUTO parameter that the user has not set."""
        for descriptor in self._parameters:
            if descriptor.auto_init is None or not descriptor.has_property(ParameterProperties.AUTO):
                continue
            value = descriptor.auto_init(self)
            logger.debug(f"Auto initialised {self.get_name()}::{descriptor.name} = {value!r}")
            self._parameters.update(descriptor.name, value)

    # ========== ACCESS ==========

    @property
    def parameters(self) -> ParameterRegistry:
        return self._parameters

    @property
    def hyper_parameters(self) -> RegistryView:
        """Parameters tunable by model selection."""
        return self._parameters.hyper()

    @property
    def gradient_parameters(self) -> RegistryView:
        return self._parameters.gradient()

    @property
    def model_parameters(self) -> RegistryView:
        return self._parameters.model()

    def has(self, key: Key, value_type: Optional[type] = None) -> bool:
        """Whether a parameter exists (and has exactly ``value_type``, if given)."""
        return self._parameters.has(key, value_type)

    def get(self, key: Key, value_type: Optional[type] = None) -> Any:
        """Read a parameter.

        With a Tag or ``value_type`` the stored static type must match exactly.
        Requesting ``str`` from an option-mapped parameter returns the option
        string of the stored code.

        Raises:
            ParameterNotFound, TypeMismatch, InvalidOption
        """
        name = tag_name(key)
        if value_type is None and isinstance(key, Tag):
            value_type = key.value_type
        if value_type is str and name in self._string_to_enum:
            return self.get_string(name)
        return self._parameters.get_value(name, value_type)

    def put(self, key: Key, value: Any) -> 'BaseObject':
        """Write a parameter.

        A string written to a parameter that is not declared as ``str`` is an
        option string and is translated through the enum map.

        Raises:
            ParameterNotFound, TypeMismatch, ConstraintViolation, InvalidOption,
            ReadOnlyParameter
        """
        self._check_alive()
        name = tag_name(key)
        descriptor = self._parameters.get(name)
        if descriptor.has_property(ParameterProperties.READONLY):
            raise ReadOnlyParameter(f"Parameter {self.get_name()}::{name} is read-only.",
                                    object_name=self.get_name(), parameter_name=name)
        if isinstance(value, str) and (name in self._string_to_enum or descriptor.value_type is not str):
            return self.put_string(name, value)
        self._parameters.update(key, value)
        return self

    def put_string(self, name: str, option: str) -> 'BaseObject':
        """Write an option-mapped parameter by its option string."""
        code = self._string_to_enum.to_code(name, option)
        self.put(Tag(name, int), code)
        return self

    def get_string(self, name: str) -> str:
        """Option string of an option-mapped parameter's current code."""
        return self.string_enum_reverse_lookup(name, self._parameters.get_value(name, int))

    def string_enum_reverse_lookup(self, name: str, code: int) -> str:
        return self._string_to_enum.to_option(name, code)

    def get_string_to_enum_map(self) -> Dict[str, Dict[str, int]]:
        return self._string_to_enum.as_dict()

    def add(self, name: str, obj: 'BaseObject') -> 'BaseObject':
        """Append an object to a list-of-objects parameter.

        Raises:
            PreconditionFailure: obj is None, or the parameter is not a list
            TypeMismatch: the list has a reified element type obj does not satisfy
        """
        if obj is None:
            raise PreconditionFailure(f"Cannot add to {self.get_name()}::{name}, no object provided.",
                                      object_name=self.get_name(), parameter_name=name)
        descriptor = self._parameters.get(name)
        current = descriptor.value
        if not isinstance(current, list):
            raise PreconditionFailure(
                f"Cannot add object {obj.get_name()} to {self.get_name()}::{name} of type "
                f"{type_name_of(descriptor.value_type)}.",
                object_name=self.get_name(), parameter_name=name)
        if is_reified(descriptor.value_type):
            element_type = get_element_types(descriptor.value_type)[0]
            if not isinstance(obj, element_type):
                raise TypeMismatch(
                    f"Cannot add object {obj.get_name()} to array parameter {self.get_name()}::{name} "
                    f"of type {type_name_of(descriptor.value_type)}.",
                    expected=type_name_of(element_type), actual=obj.get_name(),
                    object_name=self.get_name(), parameter_name=name)
        self._check_alive()
        self._parameters.update(name, type(current)([*current, obj]))
        return self

    def get_at(self, name: str, index: int, value_type: Optional[Type[T]] = None) -> 'BaseObject':
        """Object at ``index`` of a list-of-objects parameter, optionally cast."""
        items = self._parameters.get_value(name)
        if not isinstance(items, list):
            raise PreconditionFailure(f"Parameter {self.get_name()}::{name} is not an array parameter.",
                                      object_name=self.get_name(), parameter_name=name)
        if not -len(items) <= index < len(items):
            raise PreconditionFailure(f"Index {index} out of range for {self.get_name()}::{name}[{len(items)}].",
                                      object_name=self.get_name(), parameter_name=name)
        item = items[index]
        if not isinstance(item, BaseObject):
            raise TypeMismatch(
                f"Could not get array parameter {self.get_name()}::{name}[{index}] as an object.",
                expected='BaseObject', actual=type_name_of(type(item)),
                object_name=self.get_name(), parameter_name=name)
        return item.as_type(value_type) if value_type is not None else item

    def get_object(self, name: str) -> Optional['BaseObject']:
        """Untyped getter for an object parameter."""
        descriptor = self._parameters.get(name)
        if not (isinstance(descriptor.value_type, type) and issubclass(descriptor.value_type, BaseObject)):
            raise TypeMismatch(
                f"Parameter {self.get_name()}::{name} of type {type_name_of(descriptor.value_type)} "
                f"is not an object parameter.",
                expected='BaseObject', actual=type_name_of(descriptor.value_type),
                object_name=self.get_name(), parameter_name=name)
        return descriptor.value

    def run(self, name: str) -> None:
        """Invoke a function registered with watch_run()."""
        self._check_alive()
        self._parameters.run(name)

    def get_description(self, name: str) -> str:
        return self._parameters.get(name).description

    def get_params(self) -> Mapping[str, ParameterDescriptor]:
        """Read-only name → descriptor mapping of every parameter."""
        return self._parameters.get_params()

    def for_each_param_of_type(self, value_type: type, operation: Callable[[str, Any], None]) -> None:
        """Call ``operation(name, value)`` for each parameter stored as ``value_type``."""
        for descriptor in self._parameters:
            if descriptor.value_type is value_type and not descriptor.has_property(ParameterProperties.RUNFUNCTION):
                operation(descriptor.name, descriptor.value)

    def observable_names(self) -> List[str]:
        return list(self._observables)

    # ========== CASTING / GENERICS ==========

    def as_type(self, target: Type[T]) -> T:
        """Checked downcast.

        Raises:
            TypeMismatch: naming this object's type and the target type
        """
        if isinstance(self, target):
            return self
        raise TypeMismatch(
            f"Object of type {self.get_name()} cannot be converted to type {type_name_of(target)}.",
            expected=type_name_of(target), actual=self.get_name(), object_name=self.get_name())

    @staticmethod
    def cast(obj: Optional['BaseObject'], target: Type[T]) -> T:
        if obj is None:
            raise PreconditionFailure("No object provided!")
        return obj.as_type(target)

    def set_generic(self, generic: type) -> None:
        """Record the element type of a generic (templated) object."""
        self._generic = generic

    def unset_generic(self) -> None:
        self._generic = None

    def get_generic(self) -> Optional[type]:
        return self._generic

    def is_generic(self) -> bool:
        return self._generic is not None

    # ========== CLONE / EQUALITY / HASH ==========

    @classmethod
    def create_empty_of_type(cls) -> 'BaseObject':
        try:
            return cls()
        except TypeError as e:
            raise PreconditionFailure(
                f"{cls.__name__} cannot be constructed without arguments; override create_empty().",
                object_name=cls.__name__) from e

    def create_empty(self) -> 'BaseObject':
        """Empty instance of this object's exact type.

        Subclasses whose constructor requires arguments must override this.
        """
        return type(self).create_empty_of_type()

    def clone(self, properties: ParameterProperties = ParameterProperties.ALL) -> 'BaseObject':
        """Deep copy by registry traversal.

        Only parameters whose flags pass ``properties`` are copied onto the new
        instance; nested objects are cloned completely. Objects shared inside the
        graph stay shared in the copy, and cycles are reproduced.

        Raises:
            NotCloneable: a copied parameter holds a non-cloneable value
        """
        self._check_alive()
        memo: Dict[int, BaseObject] = {}
        copy = self._clone_graph(memo, properties)
        _release_cloner_refs(memo, [copy])
        return copy

    def _clone_graph(self, memo: Dict[int, 'BaseObject'],
                     properties: ParameterProperties = ParameterProperties.ALL) -> 'BaseObject':
        existing = memo.get(id(self))
        if existing is not None:
            return existing
        copy = self.create_empty()
        if type(copy) is not type(self):
            raise PreconditionFailure(
                f"{self.get_name()}.create_empty() returned {type(copy).__name__}.",
                object_name=self.get_name())
        memo[id(self)] = copy
        copy._generic = self._generic
        for descriptor in self._parameters:
            if descriptor.is_function or not descriptor.properties.matches(properties):
                continue
            # A pending AutoInit is recreated by the copy's own constructor
            if descriptor.auto_init is not None:
                continue
            try:
                cloned = descriptor.typed_value().clone(memo)
            except NotCloneable as e:
                raise NotCloneable(f"Cannot clone parameter {self.get_name()}::{descriptor.name}: {e}",
                                   object_name=self.get_name(), parameter_name=descriptor.name) from e
            copy._parameters.update(descriptor.name, cloned.value)
        return copy

    def deep_copy(self) -> 'BaseObject':
        return self.clone()

    def shallow_copy(self) -> 'BaseObject':
        """New instance sharing (and ref-ing) this object's parameter values."""
        self._check_alive()
        copy = self.create_empty()
        copy._generic = self._generic
        for descriptor in self._parameters:
            if not descriptor.is_function and descriptor.auto_init is None:
                copy._parameters.update(descriptor.name, descriptor.value)
        return copy

    def __copy__(self) -> 'BaseObject':
        return self.shallow_copy()

    def __deepcopy__(self, memo) -> 'BaseObject':
        return self.clone()

    def _value_descriptors(self) -> Dict[str, ParameterDescriptor]:
        return {d.name: d for d in self._parameters if not d.is_function}

    def equals(self, other: Optional['BaseObject']) -> bool:
        """Structural equality: same concrete type, same parameter names, equal values.

        Nested objects are compared with equals(), never by identity.
        """
        if other is None:
            return False
        return self._equals_graph(other, {} if get_settings().detect_cycles else None)

    def _equals_graph(self, other: 'BaseObject', memo: Optional[dict]) -> bool:
        if other is self:
            return True
        if type(other) is not type(self):
            logger.debug(f"Type mismatch: {self.get_name()} vs {type(other).__name__}")
            return False
        if memo is not None:
            key = (id(self), id(other))
            if key in memo:
                return True
            memo[key] = True
        if self._generic is not other._generic:
            return False
        mine = self._value_descriptors()
        theirs = other._value_descriptors()
        if mine.keys() != theirs.keys():
            logger.debug(f"Parameter sets of {self.get_name()} differ: {sorted(mine.keys() ^ theirs.keys())}")
            return False
        for name, descriptor in mine.items():
            if not descriptor.typed_value().equals(theirs[name].typed_value(), memo):
                logger.debug(f"Parameter {self.get_name()}::{name} differs")
                return False
        return True

    def hash(self) -> int:
        """Combined hash over every parameter value."""
        return self._hash_graph({} if get_settings().detect_cycles else None)

    def _hash_graph(self, memo: Optional[dict]) -> int:
        if memo is not None:
            if id(self) in memo:
                return memo[id(self)]
            # Placeholder while this object is on the current path
            memo[id(self)] = hash(self.get_name())
        descriptors = self._value_descriptors()
        result = hash((self.get_name(), tuple(
            (name, descriptors[name].typed_value().hash(memo)) for name in sorted(descriptors)
        )))
        if memo is not None:
            memo[id(self)] = result
        return result

    def update_parameter_hash(self) -> None:
        """Remember the current parameter hash."""
        self._hash = self.hash()

    def parameter_hash_changed(self) -> bool:
        """Whether any parameter changed since the last update_parameter_hash()."""
        return self.hash() != self._hash

    # ========== SERIALIZATION ==========

    def serialize(self, sink) -> None:
        """Write every parameter to ``sink``, surrounded by the save hooks.

        Parameters with a pending AutoInit are skipped; they are recomputed
        after loading.
        """
        self._check_alive()
        check = get_settings().check_serialization_hooks
        logger.debug(f"Serializing {self.get_name()}")

        self._save_pre_called = False
        self.save_serializable_pre()
        if check and not self._save_pre_called:
            raise PreconditionFailure(
                f"{self.get_name()}.save_serializable_pre(): Implementation error: "
                f"BaseObject.save_serializable_pre() not called!", object_name=self.get_name())

        sink.begin_object(self)
        for descriptor in self._parameters:
            if descriptor.is_function or descriptor.auto_init is not None:
                continue
            sink.write_parameter(descriptor.name, descriptor.typed_value())
        sink.end_object(self)

        self._save_post_called = False
        self.save_serializable_post()
        if check and not self._save_post_called:
            raise PreconditionFailure(
                f"{self.get_name()}.save_serializable_post(): Implementation error: "
                f"BaseObject.save_serializable_post() not called!", object_name=self.get_name())

    def deserialize(self, source) -> None:
        """Populate every parameter from ``source``, surrounded by the load hooks.

        Raises:
            SerializationError: a required parameter is missing from the source
        """
        self._check_alive()
        check = get_settings().check_serialization_hooks
        logger.debug(f"Deserializing {self.get_name()}")

        self._load_pre_called = False
        self.load_serializable_pre()
        if check and not self._load_pre_called:
            raise PreconditionFailure(
                f"{self.get_name()}.load_serializable_pre(): Implementation error: "
                f"BaseObject.load_serializable_pre() not called!", object_name=self.get_name())

        source.begin_object(self)
        for descriptor in self._parameters:
            if descriptor.is_function:
                continue
            if not source.has_parameter(descriptor.name):
                if descriptor.auto_init is not None:
                    continue
                raise SerializationError(
                    f"Parameter {self.get_name()}::{descriptor.name} is missing from the source.",
                    object_name=self.get_name(), parameter_name=descriptor.name)
            value = source.read_parameter(descriptor.name, descriptor.value_type)
            self._parameters.update(descriptor.name, value)
        source.end_object(self)

        self._load_post_called = False
        self.load_serializable_post()
        if check and not self._load_post_called:
            raise PreconditionFailure(
                f"{self.get_name()}.load_serializable_post(): Implementation error: "
                f"BaseObject.load_serializable_post() not called!", object_name=self.get_name())

    def load_serializable_pre(self) -> None:
        """Prepare non-registered state before loading. Overriders must call super() first."""
        self._load_pre_called = True

    def load_serializable_post(self) -> None:
        """Rebuild non-registered state after loading. Overriders must call super() first."""
        self._load_post_called = True

    def save_serializable_pre(self) -> None:
        """Overriders must call super() first."""
        self._save_pre_called = True

    def save_serializable_post(self) -> None:
        """Overriders must call super() first."""
        self._save_post_called = True

    def get_load_serializable_pre(self) -> bool:
        return self._load_pre_called

    def get_load_serializable_post(self) -> bool:
        return self._load_post_called

    def get_save_serializable_pre(self) -> bool:
        return self._save_pre_called

    def get_save_serializable_post(self) -> bool:
        return self._save_post_called

    # ========== OBSERVATION ==========

    def subscribe(self, observer: ParameterObserver) -> int:
        """Attach an observer; returns its subscription index."""
        return self._channel.subscribe(observer)

    def unsubscribe(self, observer: ParameterObserver) -> None:
        self._channel.unsubscribe(observer)

    def get_num_subscriptions(self) -> int:
        return self._channel.num_subscriptions

    def get_step(self) -> int:
        """Current step for observed values, from the step parameter if registered."""
        settings = get_settings()
        if self.has(settings.step_parameter, int):
            return self.get(settings.step_parameter, int)
        return settings.default_step

    def observe(self, step: Optional[int], name: str) -> None:
        """Emit a snapshot of a registered parameter.

        Does nothing (no lookup, no copy) when nobody is subscribed.
        """
        if self._channel.num_subscriptions == 0:
            return
        descriptor = self._parameters.get(name)
        snapshot = _snapshot(descriptor.typed_value())
        self._channel.observe(ObservedValue(
            step=self.get_step() if step is None else step,
            name=name,
            value=snapshot,
            description=descriptor.description,
            properties=descriptor.properties,
        ))

    def observe_value(self, step: Optional[int], name: str, value: Any, description: str = "",
                      properties: ParameterProperties = ParameterProperties.READONLY) -> None:
        """Emit an arbitrary value (e.g. a loss) that is not a registered parameter."""
        if self._channel.num_subscriptions == 0:
            return
        self._channel.observe(ObservedValue(
            step=self.get_step() if step is None else step,
            name=name,
            value=_snapshot(TypedValue(value)),
            description=description or self._observables.get(name, ""),
            properties=properties,
        ))

    def observe_record(self, record: ObservedValue) -> None:
        """Emit a pre-built record."""
        self._channel.observe(record)

    # ========== REPRESENTATION ==========

    @staticmethod
    def _format_value(value: Any) -> str:
        if isinstance(value, BaseObject):
            return f"{value.get_name()}(...)"
        if isinstance(value, str) and len(value) > 20:
            return repr(f"{value[:17]}...")
        return repr(value)

    def to_string(self) -> str:
        """``Name(param=value, ...)`` with nested objects abbreviated."""
        parts = []
        for descriptor in self._parameters:
            if descriptor.is_function:
                continue
            parts.append(f"{descriptor.name}={self._format_value(descriptor.value)}")
        return f"{self.get_name()}({', '.join(parts)})"

    def __repr__(self) -> str:
        if self._destroyed:
            return f"<{self.get_name()} (destroyed)>"
        return self.to_string()


def make_clone(obj: Optional[T], properties: ParameterProperties = ParameterProperties.ALL) -> T:
    """Clone ``obj``, failing on None."""
    if obj is None:
        raise PreconditionFailure("No object provided.")
    return obj.clone(properties)


def _release_cloner_refs(memo: Dict[int, BaseObject], roots) -> None:
    """Drop the creation reference of every clone in ``memo`` except ``roots``.

    Nested clones are held by their parents once the graph is built; only the
    objects handed back to the caller keep the reference they were created with.
    """
    kept = {id(root) for root in roots}
    for cloned in memo.values():
        if id(cloned) not in kept:
            cloned.unref()


def _snapshot(typed: TypedValue) -> Any:
    memo: Dict[int, BaseObject] = {}
    value = typed.clone(memo).value
    _release_cloner_refs(memo, iter_objects(value))
    return value

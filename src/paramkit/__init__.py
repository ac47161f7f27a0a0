"""
Introspectable, reference-counted base objects with typed parameter registries.

Every domain object (kernels, machines, distributions, ...) derives from
BaseObject and registers its parameters once. The registry then provides
generic typed access by name, deep cloning, structural equality, change
detection, serialization and observation of parameters over time.

Key Features:
- Typed values with exact runtime type identity (TypedValue, reified containers)
- Parameter registry with property flags, constraints and lazy initialisation
- Reference counting with weak back-references
- Structural clone / equals / hash over nested object graphs
- Observation channel for streaming parameter snapshots
- String options for integer-coded parameters

Quick Start:
    >>> from paramkit import BaseObject, ParameterProperties, Tag, positive
    >>>
    >>> class GaussianKernel(BaseObject):
    ...     def __init__(self, width: float = 1.0):
    ...         super().__init__()
    ...         self.width = width
    ...         self.watch_param('width', properties=ParameterProperties.HYPER,
    ...                          constraint=positive())
    >>>
    >>> kernel = GaussianKernel()
    >>> kernel.put('width', 2.0)
    >>> kernel.get(Tag('width', float))
    2.0

Modules:
    - any_value: TypedValue and value-level clone/equality/hash
    - typed_containers: Vector/Matrix/Map with reified element types
    - tag, properties, constraint, auto_init: parameter metadata
    - registry: per-object parameter registry
    - base_object: BaseObject, ObjectFactory, make_clone
    - observation: observed values, observers, observation channel
    - enum_map: option string mapping
    - serialization: dict/JSON collaborators
    - hash_cache: caches keyed on parameter hashes
    - tree: tree nodes with weak parent links
    - settings: process-wide and scoped settings
"""

# Errors
from paramkit.exceptions import (
    ParameterKitError,
    TypeMismatch,
    ParameterNotFound,
    ConstraintViolation,
    NotCloneable,
    InvalidOption,
    PreconditionFailure,
    DuplicateParameter,
    ReadOnlyParameter,
    ObjectDestroyed,
    SerializationError,
)

# Settings
from paramkit.settings import (
    Settings,
    get_settings,
    set_settings,
    reset_settings,
    settings_context,
)

# Values
from paramkit.typed_containers import Vector, Matrix, Map, is_reified, type_name_of
from paramkit.any_value import TypedValue, register_cloneable, unregister_cloneable, is_cloneable

# Parameter metadata
from paramkit.tag import BaseTag, Tag
from paramkit.properties import ParameterProperties
from paramkit.constraint import (
    Constraint,
    Rule,
    positive,
    non_negative,
    negative,
    greater_than,
    greater_than_or_equal,
    less_than,
    less_than_or_equal,
    within,
    one_of,
    predicate,
)
from paramkit.auto_init import AutoInit, auto

# Registry and objects
from paramkit.registry import ParameterDescriptor, ParameterRegistry, RegistryView
from paramkit.base_object import BaseObject, ObjectFactory, make_clone

# Observation
from paramkit.observation import ObservedValue, ParameterObserver, ObservationChannel

# Options
from paramkit.enum_map import StringEnumMap

# Serialization
from paramkit.serialization import (
    Serializer,
    Deserializer,
    DictSerializer,
    DictDeserializer,
    to_dict,
    from_dict,
    save_to_file,
    load_from_file,
)

# Caching
from paramkit.hash_cache import CacheKey, ParameterHashCache

# Trees
from paramkit.tree import TreeNode

__all__ = [
    # Errors
    'ParameterKitError',
    'TypeMismatch',
    'ParameterNotFound',
    'ConstraintViolation',
    'NotCloneable',
    'InvalidOption',
    'PreconditionFailure',
    'DuplicateParameter',
    'ReadOnlyParameter',
    'ObjectDestroyed',
    'SerializationError',
    # Settings
    'Settings',
    'get_settings',
    'set_settings',
    'reset_settings',
    'settings_context',
    # Values
    'Vector',
    'Matrix',
    'Map',
    'is_reified',
    'type_name_of',
    'TypedValue',
    'register_cloneable',
    'unregister_cloneable',
    'is_cloneable',
    # Parameter metadata
    'BaseTag',
    'Tag',
    'ParameterProperties',
    'Constraint',
    'Rule',
    'positive',
    'non_negative',
    'negative',
    'greater_than',
    'greater_than_or_equal',
    'less_than',
    'less_than_or_equal',
    'within',
    'one_of',
    'predicate',
    'AutoInit',
    'auto',
    # Registry and objects
    'ParameterDescriptor',
    'ParameterRegistry',
    'RegistryView',
    'BaseObject',
    'ObjectFactory',
    'make_clone',
    # Observation
    'ObservedValue',
    'ParameterObserver',
    'ObservationChannel',
    # Options
    'StringEnumMap',
    # Serialization
    'Serializer',
    'Deserializer',
    'DictSerializer',
    'DictDeserializer',
    'to_dict',
    'from_dict',
    'save_to_file',
    'load_from_file',
    # Caching
    'CacheKey',
    'ParameterHashCache',
    # Trees
    'TreeNode',
]

__version__ = '1.0.0'
__description__ = 'Introspectable, reference-counted base objects with typed parameter registries'

"""
Serialization collaborators.

The object base owns the lifecycle (hooks, parameter traversal, missing
parameter detection); the classes here own the representation.

A Serializer receives, for every object written:
    begin_object(obj) -> write_parameter(name, typed_value)* -> end_object(obj)
A Deserializer answers, for every object read:
    begin_object(obj) -> (has_parameter(name), read_parameter(name, type))* -> end_object(obj)

DictSerializer/DictDeserializer map objects to nested plain dicts:

    {
        "class": "GaussianKernel",
        "id": 0,
        "generic": null,
        "parameters": {"width": 2.0, "cache": {"__object__": {...}}}
    }

Objects shared inside one graph are written once and referenced by id
afterwards (``{"__ref__": 0}``), so shared sub-objects and cycles survive a
round trip.
"""

from abc import ABC, abstractmethod
import base64
from enum import Enum
import json
import logging
from typing import Any, Dict, List, Optional

from paramkit.any_value import TypedValue
from paramkit.exceptions import SerializationError
from paramkit.typed_containers import Map, Matrix, Vector, get_element_types, get_origin_type, is_reified, type_name_of

logger = logging.getLogger(__name__)

_SCALAR_GENERICS = {t.__name__: t for t in (bool, int, float, complex, str, bytes)}


def _generic_name(generic: Optional[type]) -> Optional[str]:
    return type_name_of(generic) if generic is not None else None


def _resolve_generic(name: Optional[str]) -> Optional[type]:
    if name is None:
        return None
    if name in _SCALAR_GENERICS:
        return _SCALAR_GENERICS[name]
    from paramkit.base_object import ObjectFactory
    return ObjectFactory.get_class(name)


class Serializer(ABC):
    """Write side of the serialization contract."""

    def write(self, obj) -> Any:
        obj.serialize(self)

    @abstractmethod
    def begin_object(self, obj) -> None:
        pass

    @abstractmethod
    def write_parameter(self, name: str, value: TypedValue) -> None:
        pass

    @abstractmethod
    def end_object(self, obj) -> None:
        pass


class Deserializer(ABC):
    """Read side of the serialization contract."""

    def read_into(self, obj) -> Any:
        obj.deserialize(self)
        return obj

    @abstractmethod
    def begin_object(self, obj) -> None:
        pass

    @abstractmethod
    def has_parameter(self, name: str) -> bool:
        pass

    @abstractmethod
    def read_parameter(self, name: str, value_type: type) -> Any:
        pass

    @abstractmethod
    def end_object(self, obj) -> None:
        pass


# =============================================================================
# DICT FORMAT
# =============================================================================

class _WriteContext:
    """State shared by the serializers of one object graph."""

    def __init__(self):
        self.ids: Dict[int, int] = {}


class DictSerializer(Serializer):
    """Serializes an object graph to nested JSON-compatible dicts."""

    def __init__(self, _context: Optional[_WriteContext] = None):
        self._context = _context or _WriteContext()
        self._stack: List[Dict[str, Any]] = []
        self.result: Optional[Dict[str, Any]] = None

    def write(self, obj) -> Dict[str, Any]:
        super().write(obj)
        return self.result

    def begin_object(self, obj) -> None:
        ids = self._context.ids
        ident = ids.setdefault(id(obj), len(ids))
        self._stack.append({
            'class': obj.get_name(),
            'id': ident,
            'generic': _generic_name(obj.get_generic()),
            'parameters': {},
        })

    def write_parameter(self, name: str, value: TypedValue) -> None:
        entry = self._stack[-1]
        try:
            entry['parameters'][name] = self._encode(value.value)
        except SerializationError as e:
            raise SerializationError(f"Cannot serialize {entry['class']}::{name}: {e}",
                                     object_name=entry['class'], parameter_name=name) from e

    def end_object(self, obj) -> None:
        self.result = self._stack.pop()

    def _encode(self, value: Any) -> Any:
        from paramkit.base_object import BaseObject

        if isinstance(value, Enum):
            return value.value
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if isinstance(value, complex):
            return {'__complex__': [value.real, value.imag]}
        if isinstance(value, bytes):
            return {'__bytes__': base64.b64encode(value).decode('ascii')}
        if isinstance(value, BaseObject):
            ident = self._context.ids.get(id(value))
            if ident is not None:
                return {'__ref__': ident}
            return {'__object__': DictSerializer(self._context).write(value)}
        if is_reified(type(value)):
            if isinstance(value, dict):
                items = [[self._encode(k), self._encode(v)] for k, v in value.items()]
            else:
                items = self._encode(list(value))
            return {'__container__': type_name_of(type(value)), 'items': items}
        if isinstance(value, dict):
            return {'__map__': [[self._encode(k), self._encode(v)] for k, v in value.items()]}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self._encode(item) for item in value]
        raise SerializationError(f"Values of type {type_name_of(type(value))} cannot be serialized.")


class _ReadContext:
    """State shared by the deserializers of one object graph."""

    def __init__(self):
        self.objects: Dict[int, Any] = {}
        self.created: List[Any] = []
        self.depth = 0


class DictDeserializer(Deserializer):
    """Populates objects from the dicts produced by DictSerializer."""

    def __init__(self, data: Dict[str, Any], _context: Optional[_ReadContext] = None):
        if not isinstance(data, dict) or 'parameters' not in data:
            raise SerializationError("Serialized object must be a dict with a 'parameters' entry.")
        self._data = data
        self._context = _context or _ReadContext()

    @property
    def class_name(self) -> str:
        return self._data.get('class', '')

    def load(self):
        """Create an empty instance of the serialized class and populate it."""
        from paramkit.base_object import ObjectFactory
        return self.read_into(ObjectFactory.create(self.class_name))

    def begin_object(self, obj) -> None:
        if self.class_name and self.class_name != obj.get_name():
            raise SerializationError(
                f"Cannot load serialized {self.class_name} into {obj.get_name()}.",
                object_name=obj.get_name())
        self._context.objects[self._data.get('id', len(self._context.objects))] = obj
        self._context.depth += 1
        generic = _resolve_generic(self._data.get('generic'))
        if generic is not None:
            obj.set_generic(generic)
        else:
            obj.unset_generic()

    def has_parameter(self, name: str) -> bool:
        return name in self._data['parameters']

    def read_parameter(self, name: str, value_type: type) -> Any:
        try:
            return self._decode(self._data['parameters'][name], value_type)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot decode {self.class_name}::{name}: {e}",
                                     object_name=self.class_name, parameter_name=name) from e

    def end_object(self, obj) -> None:
        self._context.depth -= 1
        if self._context.depth == 0:
            # Nested objects were created holding one reference for the reader;
            # their parents now own them.
            created, self._context.created = self._context.created, []
            for nested in created:
                nested.unref()

    def _read_object(self, data: Dict[str, Any]):
        nested = DictDeserializer(data, self._context)
        from paramkit.base_object import ObjectFactory
        obj = ObjectFactory.create(nested.class_name)
        self._context.created.append(obj)
        return nested.read_into(obj)

    def _decode(self, raw: Any, value_type: Optional[type]) -> Any:
        if isinstance(raw, dict):
            if '__ref__' in raw:
                if raw['__ref__'] not in self._context.objects:
                    raise SerializationError(f"Reference to unknown object id {raw['__ref__']}.")
                return self._context.objects[raw['__ref__']]
            if '__object__' in raw:
                return self._read_object(raw['__object__'])
            if '__complex__' in raw:
                return complex(*raw['__complex__'])
            if '__bytes__' in raw:
                return base64.b64decode(raw['__bytes__'])
            if '__container__' in raw:
                return self._decode_container(raw, value_type)
            if '__map__' in raw:
                container = value_type if isinstance(value_type, type) and issubclass(value_type, dict) else dict
                return container((self._decode_key(k), self._decode(v, None)) for k, v in raw['__map__'])
            raise SerializationError(f"Unrecognised encoded value {sorted(raw)}.")
        if raw is None or not isinstance(value_type, type):
            return self._decode_untyped(raw)
        if issubclass(value_type, Enum):
            return value_type(raw)
        if value_type is float and isinstance(raw, int) and not isinstance(raw, bool):
            return float(raw)
        if isinstance(raw, list):
            items = [self._decode(item, None) for item in raw]
            if issubclass(value_type, tuple) and hasattr(value_type, '_fields'):
                return value_type(*items)
            if issubclass(value_type, (list, tuple, set, frozenset)):
                return value_type(items)
            return items
        return raw

    def _decode_untyped(self, raw: Any) -> Any:
        if isinstance(raw, list):
            return [self._decode(item, None) for item in raw]
        return raw

    def _decode_key(self, raw: Any) -> Any:
        key = self._decode(raw, None)
        return tuple(key) if isinstance(key, list) else key

    def _decode_container(self, raw: Dict[str, Any], value_type: Optional[type]) -> Any:
        if not is_reified(value_type):
            raise SerializationError(f"Container {raw['__container__']} stored in a parameter "
                                     f"of type {type_name_of(value_type)}.")
        if raw['__container__'] != type_name_of(value_type):
            raise SerializationError(f"Serialized {raw['__container__']} does not match declared "
                                     f"type {type_name_of(value_type)}.")
        args = get_element_types(value_type)
        origin = get_origin_type(value_type)
        if origin is Map:
            key_type, item_type = (args + (None, None))[:2]
            return value_type({self._decode(k, key_type): self._decode(v, item_type) for k, v in raw['items']})
        if origin is Matrix:
            return value_type([[self._decode(x, args[0]) for x in row] for row in raw['items']])
        if origin is Vector:
            return value_type([self._decode(x, args[0]) for x in raw['items']])
        raise SerializationError(f"Unknown container {raw['__container__']}.")


# =============================================================================
# CONVENIENCE
# =============================================================================

def to_dict(obj) -> Dict[str, Any]:
    """Serialize an object graph to a nested dict."""
    return DictSerializer().write(obj)


def from_dict(data: Dict[str, Any]):
    """Rebuild an object graph from a nested dict; the caller owns the result."""
    return DictDeserializer(data).load()


def save_to_file(obj, filepath: str) -> None:
    """Save an object graph to a JSON file.

    Args:
        obj: Object to save
        filepath: Path to save the JSON file.
    """
    data = to_dict(obj)
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)
    logger.info(f"Saved {obj.get_name()} to {filepath}")


def load_from_file(filepath: str):
    """Load an object graph from a JSON file.

    Args:
        filepath: Path to the JSON file.
    """
    with open(filepath, 'r') as f:
        data = json.load(f)
    obj = from_dict(data)
    logger.info(f"Loaded {obj.get_name()} from {filepath}")
    return obj

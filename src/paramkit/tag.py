"""
Lookup keys for registered parameters.

BaseTag is a bare name used for untyped lookup. Tag pairs the name with the
static type the caller expects, so a typed get or put is checked against the
type the parameter was registered with.
"""

from dataclasses import dataclass
from typing import Any

from paramkit.typed_containers import type_name_of


@dataclass(frozen=True)
class BaseTag:
    """Parameter name without type information."""
    name: str

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ValueError(f"Tag name must be a non-empty string, got {self.name!r}")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Tag(BaseTag):
    """Parameter name plus the expected static type."""
    value_type: Any = None

    def __post_init__(self):
        super().__post_init__()
        if self.value_type is None:
            raise ValueError(f"Tag '{self.name}' requires a value type; use BaseTag for untyped lookup")

    def base(self) -> BaseTag:
        """Drop the type information."""
        return BaseTag(self.name)

    def __str__(self) -> str:
        return f"{self.name}: {type_name_of(self.value_type)}"


def tag_name(key) -> str:
    """Accept a plain string, BaseTag or Tag and return the parameter name."""
    return key.name if isinstance(key, BaseTag) else key

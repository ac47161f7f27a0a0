"""
Lazy initialisers for AUTO parameters.

An AUTO parameter starts out with a placeholder value and an AutoInit. When the
owning object calls ``init_auto_params()`` (typically right before training),
every initializer that has not been cancelled by a user ``put`` computes the
real value from the object's current state.
"""

from typing import Any, Callable


class AutoInit:
    """Named initializer computing a parameter's default from its owner."""

    def __init__(self, name: str, description: str, compute: Callable[[Any], Any]):
        self._name = name
        self._description = description
        self._compute = compute

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def __call__(self, owner: Any) -> Any:
        return self._compute(owner)

    def __repr__(self) -> str:
        return f"AutoInit({self._name!r})"


def auto(description: str = "") -> Callable[[Callable[[Any], Any]], AutoInit]:
    """Decorator form: turn ``fn(owner) -> value`` into an AutoInit."""
    def wrap(compute: Callable[[Any], Any]) -> AutoInit:
        return AutoInit(compute.__name__, description or (compute.__doc__ or "").strip(), compute)
    return wrap

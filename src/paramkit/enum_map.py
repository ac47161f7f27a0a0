"""
String ↔ integer-code mapping for option-valued parameters.

Bindings without native enum types set such parameters through their option
strings; the object stores the integer code through its ordinary typed put.
The reverse mapping is kept in lock-step so that ``to_option(to_code(s)) == s``.
"""

from typing import Dict, Optional

from paramkit.exceptions import InvalidOption


class StringEnumMap:
    """Per-object ``parameter -> {option: code}`` table."""

    def __init__(self, owner_name=lambda: "Object"):
        self._owner_name = owner_name
        self._forward: Dict[str, Dict[str, int]] = {}
        self._reverse: Dict[str, Dict[int, str]] = {}

    def add(self, parameter: str, option: str, code: int) -> None:
        """Register ``option`` as the string alias of ``code``.

        Raises:
            InvalidOption: if the option or the code is already bound differently
        """
        forward = self._forward.setdefault(parameter, {})
        reverse = self._reverse.setdefault(parameter, {})
        if forward.get(option, code) != code or reverse.get(code, option) != option:
            raise InvalidOption(
                f"Option '{option}' ({code}) conflicts with an existing option of "
                f"{self._owner_name()}::{parameter}",
                object_name=self._owner_name(),
                parameter_name=parameter,
            )
        forward[option] = code
        reverse[code] = option

    def has_options(self, parameter: str) -> bool:
        return parameter in self._forward

    def to_code(self, parameter: str, option: str) -> int:
        """Resolve an option string.

        Raises:
            InvalidOption: no options registered, or an illegal option
        """
        if parameter not in self._forward:
            raise InvalidOption(
                f"There are no options for parameter {self._owner_name()}::{parameter}",
                object_name=self._owner_name(),
                parameter_name=parameter,
            )
        options = self._forward[parameter]
        if option not in options:
            raise InvalidOption(
                f"Illegal option '{option}' for parameter {self._owner_name()}::{parameter}",
                object_name=self._owner_name(),
                parameter_name=parameter,
            )
        return options[option]

    def to_option(self, parameter: str, code: int) -> str:
        """Reverse lookup of the option string bound to ``code``."""
        option: Optional[str] = self._reverse.get(parameter, {}).get(code)
        if option is None:
            raise InvalidOption(
                f"There is no option for parameter {self._owner_name()}::{parameter} with value {code}",
                object_name=self._owner_name(),
                parameter_name=parameter,
            )
        return option

    def options(self, parameter: str) -> Dict[str, int]:
        """Copy of the forward mapping of one parameter (empty if unmapped)."""
        return dict(self._forward.get(parameter, {}))

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        """Copy of the full table."""
        return {parameter: dict(options) for parameter, options in self._forward.items()}

    def __contains__(self, parameter: str) -> bool:
        return parameter in self._forward

"""
Constraint layer: validation predicates attached to parameters.

A Constraint is called with a candidate value and returns None when it accepts
the value, or a human-readable reason when it rejects it. The registry runs the
constraint of every CONSTRAIN parameter before committing a write.

Usage:
    from paramkit.constraint import Constraint, positive, less_than

    learning_rate = Constraint(positive(), less_than(1.0))
    learning_rate(0.5)   # None
    learning_rate(-1.0)  # '-1.0 must be positive'
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Tuple


@dataclass(frozen=True)
class Rule:
    """Single predicate with a message template.

    The template is formatted with ``value`` (the candidate) and any
    keyword arguments captured in ``params``.
    """
    check: Callable[[Any], bool]
    template: str
    params: Tuple[Tuple[str, Any], ...] = ()

    def __call__(self, value: Any) -> Optional[str]:
        try:
            accepted = self.check(value)
        except TypeError:
            accepted = False
        if accepted:
            return None
        return self.template.format(value=value, **dict(self.params))


class Constraint:
    """Conjunction of rules; reports every violated rule at once."""

    def __init__(self, *rules: Callable[[Any], Optional[str]]):
        if not rules:
            raise ValueError("Constraint requires at least one rule")
        self._rules = rules

    @property
    def rules(self) -> Tuple[Callable[[Any], Optional[str]], ...]:
        return self._rules

    def __call__(self, value: Any) -> Optional[str]:
        reasons = [reason for reason in (rule(value) for rule in self._rules) if reason]
        return " and ".join(reasons) if reasons else None

    def run(self, value: Any) -> Optional[str]:
        """Alias of calling the constraint."""
        return self(value)

    def __repr__(self) -> str:
        return f"Constraint({len(self._rules)} rules)"


def positive() -> Rule:
    return Rule(lambda v: v > 0, "{value} must be positive")


def non_negative() -> Rule:
    return Rule(lambda v: v >= 0, "{value} must be non-negative")


def negative() -> Rule:
    return Rule(lambda v: v < 0, "{value} must be negative")


def greater_than(bound: Any) -> Rule:
    return Rule(lambda v: v > bound, "{value} must be greater than {bound}", (('bound', bound),))


def greater_than_or_equal(bound: Any) -> Rule:
    return Rule(lambda v: v >= bound, "{value} must be greater than or equal to {bound}", (('bound', bound),))


def less_than(bound: Any) -> Rule:
    return Rule(lambda v: v < bound, "{value} must be less than {bound}", (('bound', bound),))


def less_than_or_equal(bound: Any) -> Rule:
    return Rule(lambda v: v <= bound, "{value} must be less than or equal to {bound}", (('bound', bound),))


def within(low: Any, high: Any) -> Rule:
    """Inclusive range check."""
    return Rule(
        lambda v: low <= v <= high,
        "{value} must be within [{low}, {high}]",
        (('low', low), ('high', high)),
    )


def one_of(*allowed: Any) -> Rule:
    return Rule(lambda v: v in allowed, "{value} must be one of {allowed}", (('allowed', allowed),))


def predicate(check: Callable[[Any], bool], message: str) -> Rule:
    """Wrap an arbitrary predicate; ``message`` may reference ``{value}``."""
    return Rule(check, message)


def as_constraint(rules: Any) -> Optional[Constraint]:
    """Normalise None, a single rule, an iterable of rules or a Constraint."""
    if rules is None or isinstance(rules, Constraint):
        return rules
    if callable(rules):
        return Constraint(rules)
    if isinstance(rules, Iterable):
        return Constraint(*rules)
    raise TypeError(f"Cannot build a constraint from {rules!r}")

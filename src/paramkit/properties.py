"""Property flags attached to every registered parameter."""

from enum import Flag


class ParameterProperties(Flag):
    """Bitset describing how a parameter participates in the object model.

    HYPER:       tunable by model selection
    GRADIENT:    differentiable, exposed to gradient-based optimisation
    MODEL:       learned state produced by training
    AUTO:        value computed lazily by an AutoInit until the user sets one
    CONSTRAIN:   every write is validated by a Constraint
    READONLY:    cannot be set through put()
    RUNFUNCTION: a mutating function callable only through run()
    """
    NONE = 0
    HYPER = 1 << 0
    GRADIENT = 1 << 1
    MODEL = 1 << 2
    AUTO = 1 << 3
    CONSTRAIN = 1 << 4
    READONLY = 1 << 5
    RUNFUNCTION = 1 << 6
    ALL = HYPER | GRADIENT | MODEL | AUTO | CONSTRAIN | READONLY | RUNFUNCTION

    def has(self, other: 'ParameterProperties') -> bool:
        """True if every bit of ``other`` is set."""
        return (self & other) == other

    def matches(self, mask: 'ParameterProperties') -> bool:
        """True if the flags pass a clone/filter mask.

        ALL passes everything, including parameters without any flag set.
        """
        if mask == ParameterProperties.ALL:
            return True
        return bool(self & mask)

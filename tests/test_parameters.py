"""
Tests for parameter metadata and the parameter registry.

Tests cover:
- Tag / BaseTag construction
- ParameterProperties masks
- Constraint rules and messages
- AutoInit
- ParameterRegistry create/get/update/run and filtered views
"""
import pytest

from paramkit import (
    AutoInit,
    BaseTag,
    Constraint,
    ConstraintViolation,
    DuplicateParameter,
    InvalidOption,
    ParameterDescriptor,
    ParameterNotFound,
    ParameterProperties,
    ParameterRegistry,
    PreconditionFailure,
    ReadOnlyParameter,
    StringEnumMap,
    Tag,
    TypeMismatch,
    TypedValue,
    auto,
    greater_than,
    less_than,
    one_of,
    positive,
    predicate,
    within,
)
from paramkit.registry import MethodValue, OwnedValue

HYPER = ParameterProperties.HYPER
MODEL = ParameterProperties.MODEL
GRADIENT = ParameterProperties.GRADIENT


def make_registry():
    return ParameterRegistry(lambda: 'Dummy')


def owned(name, value, **kwargs):
    return ParameterDescriptor(name=name, holder=OwnedValue(TypedValue(value)), **kwargs)


class TestTags:
    """Test Tag and BaseTag."""

    def test_tag_carries_type(self):
        """Tag pairs a name with a type."""
        tag = Tag('width', float)
        assert tag.name == 'width'
        assert tag.value_type is float
        assert str(tag) == 'width: float'

    def test_tag_requires_type(self):
        """Tag without a type is rejected."""
        with pytest.raises(ValueError):
            Tag('width')

    def test_empty_name_rejected(self):
        """Tags need a non-empty name."""
        with pytest.raises(ValueError):
            BaseTag('')

    def test_base_drops_type(self):
        """base() returns an untyped tag that compares by name."""
        assert Tag('width', float).base() == BaseTag('width')

    def test_tags_hashable(self):
        """Tags can be used as dict keys."""
        assert {Tag('a', int): 1}[Tag('a', int)] == 1


class TestProperties:
    """Test ParameterProperties masks."""

    def test_has_requires_all_bits(self):
        """has() checks every bit of the argument."""
        flags = HYPER | GRADIENT
        assert flags.has(HYPER)
        assert flags.has(HYPER | GRADIENT)
        assert not flags.has(HYPER | MODEL)

    def test_matches_intersection(self):
        """matches() accepts any shared bit."""
        assert (HYPER | GRADIENT).matches(GRADIENT | MODEL)
        assert not HYPER.matches(MODEL)

    def test_all_matches_unflagged(self):
        """ALL passes parameters without any flag."""
        assert ParameterProperties.NONE.matches(ParameterProperties.ALL)
        assert not ParameterProperties.NONE.matches(HYPER)


class TestConstraints:
    """Test constraint rules."""

    def test_positive(self):
        """positive() accepts > 0 and reports the offending value."""
        rule = positive()
        assert rule(1.0) is None
        assert rule(-1.0) == "-1.0 must be positive"

    def test_bounds_in_message(self):
        """Bound values are formatted into the message."""
        assert greater_than(3)(2) == "2 must be greater than 3"
        assert within(0, 1)(2) == "2 must be within [0, 1]"

    def test_conjunction_reports_all(self):
        """A Constraint joins every violated rule."""
        constraint = Constraint(positive(), less_than(-5))
        assert constraint(-1) == "-1 must be positive and -1 must be less than -5"
        assert constraint(1) == "1 must be less than -5"
        assert constraint.run(1) == constraint(1)

    def test_incomparable_value_rejected(self):
        """A TypeError inside the check counts as a rejection."""
        assert positive()('text') == "text must be positive"

    def test_one_of_and_predicate(self):
        """one_of() and predicate() wrap membership and arbitrary checks."""
        assert one_of('a', 'b')('a') is None
        assert one_of('a', 'b')('c') is not None
        assert predicate(lambda v: v % 2 == 0, "{value} must be even")(3) == "3 must be even"

    def test_empty_constraint_rejected(self):
        """A Constraint needs at least one rule."""
        with pytest.raises(ValueError):
            Constraint()


class TestAutoInit:
    """Test lazy initialisers."""

    def test_call_computes_from_owner(self):
        """AutoInit computes from the owner passed in."""
        init = AutoInit('rate', "half the size", lambda owner: owner['size'] / 2)
        assert init({'size': 4}) == 2.0
        assert init.name == 'rate'
        assert init.description == "half the size"

    def test_decorator(self):
        """auto() builds an AutoInit from a function."""
        @auto("uses the docstring otherwise")
        def rate(owner):
            return 0.1

        assert isinstance(rate, AutoInit)
        assert rate.name == 'rate'
        assert rate(None) == 0.1


class TestRegistry:
    """Test ParameterRegistry directly."""

    def test_create_and_get(self):
        """Created parameters are found by name, BaseTag and Tag."""
        registry = make_registry()
        registry.create('size', owned('size', 3))
        assert registry.get_value('size') == 3
        assert registry.get_value(BaseTag('size')) == 3
        assert registry.get_value(Tag('size', int)) == 3
        assert 'size' in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self):
        """Registering a name twice fails."""
        registry = make_registry()
        registry.create('size', owned('size', 3))
        with pytest.raises(DuplicateParameter):
            registry.create('size', owned('size', 4))

    def test_missing_parameter_message(self):
        """Unknown names raise ParameterNotFound naming Object::parameter."""
        with pytest.raises(ParameterNotFound, match="Parameter Dummy::missing does not exist."):
            make_registry().get('missing')

    def test_has_with_type(self):
        """has() honours the requested type."""
        registry = make_registry()
        registry.create('size', owned('size', 3))
        assert registry.has('size')
        assert registry.has(Tag('size', int))
        assert not registry.has(Tag('size', float))
        assert not registry.has('other')

    def test_update_type_checked(self):
        """Updates must match the stored type exactly."""
        registry = make_registry()
        registry.create('size', owned('size', 3))
        with pytest.raises(TypeMismatch):
            registry.update('size', 3.0)
        with pytest.raises(TypeMismatch):
            registry.update(Tag('size', float), 3.0)
        registry.update('size', 4)
        assert registry.get_value('size') == 4

    def test_constraint_keeps_old_value(self):
        """A rejected update leaves the old value in place."""
        registry = make_registry()
        registry.create('rate', owned('rate', 0.5, properties=ParameterProperties.CONSTRAIN,
                                      constraint=Constraint(positive())))
        with pytest.raises(ConstraintViolation) as excinfo:
            registry.update('rate', -1.0)
        assert excinfo.value.reason == "-1.0 must be positive"
        assert "Dummy::rate" in str(excinfo.value)
        assert registry.get_value('rate') == 0.5

    def test_callbacks_after_update(self):
        """Callbacks fire after every successful update only."""
        registry = make_registry()
        registry.create('rate', owned('rate', 0.5, properties=ParameterProperties.CONSTRAIN,
                                      constraint=Constraint(positive())))
        calls = []
        registry.add_callback('rate', lambda: calls.append(registry.get_value('rate')))
        registry.update('rate', 1.0)
        with pytest.raises(ConstraintViolation):
            registry.update('rate', -1.0)
        assert calls == [1.0]

    def test_update_cancels_auto(self):
        """A user update drops a pending AutoInit."""
        registry = make_registry()
        init = AutoInit('rate', "", lambda owner: 1.0)
        descriptor = registry.create('rate', owned('rate', 0.5, properties=ParameterProperties.AUTO,
                                                   auto_init=init))
        registry.update('rate', 0.2, cancel_auto=False)
        assert descriptor.auto_init is init
        registry.update('rate', 0.3)
        assert descriptor.auto_init is None

    def test_function_parameters(self):
        """Function parameters are readable but not writable."""
        registry = make_registry()
        registry.create('answer', ParameterDescriptor(name='answer', holder=MethodValue(lambda: 42, int),
                                                      properties=ParameterProperties.READONLY))
        assert registry.get_value('answer') == 42
        with pytest.raises(ReadOnlyParameter):
            registry.update('answer', 1)

    def test_run(self):
        """run() invokes RUNFUNCTION parameters and reports failure."""
        registry = make_registry()
        calls = []
        flags = ParameterProperties.RUNFUNCTION | ParameterProperties.READONLY
        registry.create('ok', ParameterDescriptor(name='ok', holder=MethodValue(lambda: calls.append(1) or True, bool),
                                                  properties=flags))
        registry.create('fail', ParameterDescriptor(name='fail', holder=MethodValue(lambda: False, bool),
                                                    properties=flags))
        registry.run('ok')
        assert calls == [1]
        with pytest.raises(PreconditionFailure, match="Failed to run function Dummy::fail"):
            registry.run('fail')
        with pytest.raises(PreconditionFailure):
            registry.get_value('ok')

    def test_filtered_views(self):
        """Views select parameters by flag and stay live."""
        registry = make_registry()
        registry.create('width', owned('width', 1.0, properties=HYPER | GRADIENT))
        registry.create('weights', owned('weights', [0.0], properties=MODEL))
        registry.create('plain', owned('plain', 1))
        hyper = registry.hyper()
        assert hyper.names() == ['width']
        assert registry.gradient().names() == ['width']
        assert registry.model().names() == ['weights']
        registry.create('C', owned('C', 1.0, properties=HYPER))
        assert hyper.names() == ['width', 'C']
        assert 'plain' not in hyper
        with pytest.raises(ParameterNotFound) as info:
            hyper.get('plain')
        assert info.value.object_name == 'Dummy'
        assert info.value.parameter_name == 'plain'

    def test_get_params_read_only(self):
        """get_params() cannot be mutated."""
        registry = make_registry()
        registry.create('size', owned('size', 3))
        params = registry.get_params()
        with pytest.raises(TypeError):
            params['other'] = None


class TestStringEnumMap:
    """Test the option table on its own."""

    def test_forward_and_reverse(self):
        """Options map to codes and back."""
        options = StringEnumMap(lambda: 'Dummy')
        options.add('solver', 'newton', 0)
        options.add('solver', 'sgd', 1)
        assert options.has_options('solver')
        assert options.to_code('solver', 'sgd') == 1
        assert options.to_option('solver', 0) == 'newton'
        assert options.options('solver') == {'newton': 0, 'sgd': 1}

    def test_unknown_code(self):
        """Reverse lookup of an unbound code fails."""
        options = StringEnumMap(lambda: 'Dummy')
        options.add('solver', 'newton', 0)
        with pytest.raises(InvalidOption, match="Dummy::solver"):
            options.to_option('solver', 7)

    def test_rebinding_same_pair_allowed(self):
        """Adding an identical binding twice is harmless."""
        options = StringEnumMap()
        options.add('solver', 'newton', 0)
        options.add('solver', 'newton', 0)
        assert options.as_dict() == {'solver': {'newton': 0}}


class TestExceptions:
    """Test the error taxonomy."""

    def test_builtin_bases(self):
        """Errors can be caught as the matching builtin exceptions."""
        assert issubclass(TypeMismatch, TypeError)
        assert issubclass(ParameterNotFound, LookupError)
        assert issubclass(ConstraintViolation, ValueError)
        assert issubclass(InvalidOption, ValueError)
        assert issubclass(ReadOnlyParameter, PreconditionFailure)

    def test_location(self):
        """Errors expose Object::parameter."""
        error = ParameterNotFound("missing", object_name='Machine', parameter_name='C')
        assert error.location == 'Machine::C'
        assert str(error) == "missing"
        assert ParameterNotFound("missing", object_name='Machine').location == 'Machine'

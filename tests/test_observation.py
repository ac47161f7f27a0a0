"""
Tests for the observation channel.

Tests cover:
- Subscription bookkeeping
- Zero-subscriber short circuit
- Ordered fan-out and filtering
- Snapshot independence of observed values
- Observer errors and completion
"""
import dataclasses

import pytest

from paramkit import (
    BaseObject,
    NotCloneable,
    ObservedValue,
    ParameterObserver,
    ParameterProperties,
    PreconditionFailure,
    Vector,
    settings_context,
)

from sample_objects import CombinedKernel, GaussianKernel, Machine, Opaque


class Recorder(ParameterObserver):
    def __init__(self, label, log, **kwargs):
        super().__init__(**kwargs)
        self.label = label
        self.log = log

    def on_next(self, record):
        self.log.append((self.label, record.name, record.step))
        super().on_next(record)


class Exploding(ParameterObserver):
    def on_next(self, record):
        raise RuntimeError("observer failed")


class Plain(BaseObject):
    def __init__(self):
        super().__init__()
        self.register_param('size', 1)


class TestSubscriptions:
    """Test subscribe/unsubscribe."""

    def test_indices_increase(self):
        """Subscription indices are monotonic and never reused."""
        machine = Machine()
        first, second, third = ParameterObserver(), ParameterObserver(), ParameterObserver()
        assert machine.subscribe(first) == 0
        assert machine.subscribe(second) == 1
        machine.unsubscribe(first)
        assert machine.subscribe(third) == 2
        assert machine.get_num_subscriptions() == 2

    def test_preconditions(self):
        """None, duplicates and unknown observers are rejected."""
        machine = Machine()
        observer = ParameterObserver()
        with pytest.raises(PreconditionFailure):
            machine.subscribe(None)
        machine.subscribe(observer)
        with pytest.raises(PreconditionFailure):
            machine.subscribe(observer)
        with pytest.raises(PreconditionFailure):
            machine.unsubscribe(ParameterObserver())

    def test_unsubscribe_stops_delivery(self):
        """Unsubscribed observers receive nothing further."""
        machine = Machine()
        observer = ParameterObserver()
        machine.subscribe(observer)
        machine.observe_value(0, 'loss', 1.0)
        machine.unsubscribe(observer)
        machine.observe_value(1, 'loss', 0.5)
        assert observer.get_num_observations() == 1


class TestDelivery:
    """Test fan-out of observed values."""

    def test_no_subscribers_no_snapshot(self):
        """Without subscribers nothing is looked up or copied."""
        opaque = Opaque()
        opaque.observe(0, 'handle')
        opaque.observe(0, 'missing')
        opaque.subscribe(ParameterObserver())
        with pytest.raises(NotCloneable):
            opaque.observe(0, 'handle')

    def test_training_emits_steps(self):
        """Values emitted during training carry the current step."""
        machine = Machine()
        observer = ParameterObserver(names=['loss'])
        machine.subscribe(observer)
        machine.run('train')
        records = observer.get_observations()
        assert [r.step for r in records] == [0, 1, 2]
        assert [r.value for r in records] == pytest.approx([1.0, 0.5, 1.0 / 3])
        assert records[0].description == "Training loss"
        assert records[0].properties == ParameterProperties.READONLY

    def test_snapshots_are_independent(self):
        """Later changes to a parameter never reach delivered values."""
        machine = Machine()
        observer = ParameterObserver(names=['weights'])
        machine.subscribe(observer)
        machine.run('train')
        first = observer.get_observation(0)
        assert type(first.value) is Vector[float]
        assert list(first.value) == pytest.approx([0.1, 0.1])
        machine.weights.append(7.0)
        assert observer.get_observation(2).value is not machine.weights
        assert len(observer.get_observation(2).value) == 2

    def test_registered_parameter_metadata(self):
        """observe() copies the parameter's description and flags."""
        machine = Machine()
        observer = ParameterObserver()
        machine.subscribe(observer)
        machine.observe(5, 'bias')
        record = observer.get_observation(0)
        assert record.step == 5
        assert record.description == "Bias"
        assert record.properties == ParameterProperties.MODEL | ParameterProperties.GRADIENT

    def test_snapshot_reference_counts(self):
        """Nested objects in a snapshot are held only by their snapshot parents."""
        combined = CombinedKernel()
        combined.add('kernels', GaussianKernel(width=2.0))
        machine = Machine()
        machine.put('kernel', combined)
        observer = ParameterObserver()
        machine.subscribe(observer)
        machine.observe(1, 'kernel')
        machine.observe_value(2, 'models', [combined])

        for snapshot in (observer.get_observation(0).value, observer.get_observation(1).value[0]):
            assert snapshot is not combined
            assert snapshot.ref_count() == 1
            nested = snapshot.kernels[0]
            assert nested.ref_count() == 1
            snapshot.unref()
            assert nested.is_destroyed()
        assert combined.kernels[0].ref_count() == 2

    def test_subscription_order(self):
        """Observers are called in subscription order."""
        machine = Machine()
        log = []
        machine.subscribe(Recorder('a', log))
        machine.subscribe(Recorder('b', log))
        machine.observe_value(0, 'loss', 1.0)
        assert log == [('a', 'loss', 0), ('b', 'loss', 0)]

    def test_property_filter(self):
        """Observers can select records by property flags."""
        machine = Machine()
        observer = ParameterObserver(properties=ParameterProperties.MODEL)
        machine.subscribe(observer)
        machine.run('train')
        assert {r.name for r in observer.get_observations()} == {'weights'}

    def test_default_step(self):
        """Objects without an iteration parameter use the default step."""
        plain = Plain()
        observer = ParameterObserver()
        plain.subscribe(observer)
        plain.observe(None, 'size')
        with settings_context(default_step=0):
            plain.observe(None, 'size')
        assert [r.step for r in observer.get_observations()] == [-1, 0]

    def test_custom_step_parameter(self):
        """The step parameter name is configurable."""
        machine = Machine()
        machine.put('max_iterations', 7)
        observer = ParameterObserver()
        machine.subscribe(observer)
        with settings_context(step_parameter='max_iterations'):
            machine.observe(None, 'C')
        assert observer.get_observation(0).step == 7


class TestObserverErrors:
    """Test observer failures and completion."""

    def test_strict_errors_propagate(self):
        """By default an observer error reaches the producer."""
        machine = Machine()
        exploding = Exploding()
        machine.subscribe(exploding)
        with pytest.raises(RuntimeError, match="observer failed"):
            machine.observe_value(0, 'loss', 1.0)
        assert len(exploding.get_errors()) == 1

    def test_lenient_errors_continue(self):
        """With strict_observers off, delivery continues to later observers."""
        machine = Machine()
        exploding, observer = Exploding(), ParameterObserver()
        machine.subscribe(exploding)
        machine.subscribe(observer)
        with settings_context(strict_observers=False):
            machine.observe_value(0, 'loss', 1.0)
        assert observer.get_num_observations() == 1
        assert len(exploding.get_errors()) == 1

    def test_complete_on_destroy(self):
        """Observers are completed when the producer is destroyed."""
        machine = Machine()
        observer = ParameterObserver()
        machine.subscribe(observer)
        machine.unref()
        assert observer.completed
        assert machine.get_num_subscriptions() == 0

    def test_clear(self):
        """clear() forgets records and completion."""
        observer = ParameterObserver()
        observer.on_next(ObservedValue(step=0, name='x', value=1))
        observer.on_complete()
        observer.clear()
        assert observer.get_num_observations() == 0
        assert not observer.completed


class TestObservedValue:
    """Test the observed value record."""

    def test_frozen(self):
        """Records cannot be modified."""
        record = ObservedValue(step=1, name='loss', value=0.5)
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.step = 2

    def test_to_dict(self):
        """to_dict() exports every field."""
        record = ObservedValue(step=1, name='loss', value=0.5, description="Loss")
        data = record.to_dict()
        assert data['step'] == 1
        assert data['name'] == 'loss'
        assert data['value'] == 0.5
        assert data['description'] == "Loss"
        assert data['properties'] == ParameterProperties.READONLY.value
        assert data['timestamp'] > 0

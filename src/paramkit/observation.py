"""
Observation channel: publish/subscribe delivery of parameter snapshots.

Long-running operations (training loops) emit ObservedValue records describing a
parameter at a given step. Records are fanned out synchronously, in subscription
order, on the producer's thread. There is no buffering: a slow observer slows the
producer, and an observer that needs asynchronous delivery must queue records
itself. With no subscribers, observe() returns immediately.

Usage:
    observer = ParameterObserver(names=["loss"])
    index = machine.subscribe(observer)
    machine.train()
    observer.get_observations()  # [ObservedValue(step=0, name='loss', ...), ...]
    machine.unsubscribe(observer)
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from paramkit.exceptions import PreconditionFailure
from paramkit.properties import ParameterProperties
from paramkit.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObservedValue:
    """Immutable, time-stamped snapshot of one parameter value.

    ``value`` is a deep copy taken when the record was created; later changes
    to the live parameter never reach a delivered record.
    """
    step: int
    name: str
    value: Any
    description: str = ""
    properties: ParameterProperties = ParameterProperties.READONLY
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Export to a plain dict (value left as-is)."""
        return {
            'step': self.step,
            'name': self.name,
            'value': self.value,
            'description': self.description,
            'properties': self.properties.value,
            'timestamp': self.timestamp,
        }


class ParameterObserver:
    """
    Receives observed values from the objects it is subscribed to.

    The base implementation records every accepted value. Subclasses override
    on_next()/on_error()/on_complete() to stream values elsewhere, and may call
    super().on_next() to keep the history.

    Args:
        names: Only accept records with these names (None accepts all)
        properties: Only accept records whose flags intersect this mask
    """

    def __init__(self, names: Optional[Iterable[str]] = None,
                 properties: ParameterProperties = ParameterProperties.ALL):
        self._observed_names = frozenset(names) if names is not None else None
        self._observed_properties = properties
        self._observations: List[ObservedValue] = []
        self._errors: List[BaseException] = []
        self._completed = False

    @property
    def observed_names(self) -> Optional[frozenset]:
        return self._observed_names

    @property
    def completed(self) -> bool:
        return self._completed

    def observes(self, record: ObservedValue) -> bool:
        """Whether a record passes the name and property filters."""
        if self._observed_names is not None and record.name not in self._observed_names:
            return False
        return record.properties.matches(self._observed_properties)

    def on_next(self, record: ObservedValue) -> None:
        if self.observes(record):
            self._observations.append(record)

    def on_error(self, error: BaseException) -> None:
        self._errors.append(error)

    def on_complete(self) -> None:
        self._completed = True

    def get_observations(self) -> List[ObservedValue]:
        return list(self._observations)

    def get_observation(self, index: int) -> ObservedValue:
        return self._observations[index]

    def get_num_observations(self) -> int:
        return len(self._observations)

    def get_errors(self) -> List[BaseException]:
        return list(self._errors)

    def clear(self) -> None:
        """Forget recorded values and errors, and reset completion."""
        self._observations.clear()
        self._errors.clear()
        self._completed = False


class ObservationChannel:
    """Ordered set of subscriptions with synchronous fan-out.

    Subscription indices increase monotonically and are never reused.

    Thread safety: Not thread-safe; subscribe/unsubscribe from the thread that
    owns the producing object.
    """

    def __init__(self, owner_name=lambda: "Object"):
        self._owner_name = owner_name
        self._subscriptions: Dict[int, ParameterObserver] = {}
        self._next_index = 0

    @property
    def num_subscriptions(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, observer: ParameterObserver) -> int:
        """Attach an observer and return its subscription index.

        Raises:
            PreconditionFailure: observer is None or already subscribed
        """
        if observer is None:
            raise PreconditionFailure(f"No observer provided to {self._owner_name()}.subscribe().",
                                      object_name=self._owner_name())
        if self.subscription_index(observer) is not None:
            raise PreconditionFailure(f"Observer {observer!r} is already subscribed to {self._owner_name()}.",
                                      object_name=self._owner_name())
        index = self._next_index
        self._next_index += 1
        self._subscriptions[index] = observer
        logger.debug(f"Subscribed {type(observer).__name__} to {self._owner_name()} (index={index})")
        return index

    def unsubscribe(self, observer: ParameterObserver) -> None:
        """Detach an observer.

        Raises:
            PreconditionFailure: observer is not subscribed
        """
        index = self.subscription_index(observer)
        if index is None:
            raise PreconditionFailure(f"Observer {observer!r} is not subscribed to {self._owner_name()}.",
                                      object_name=self._owner_name())
        del self._subscriptions[index]
        logger.debug(f"Unsubscribed {type(observer).__name__} from {self._owner_name()} (index={index})")

    def subscription_index(self, observer: ParameterObserver) -> Optional[int]:
        for index, subscribed in self._subscriptions.items():
            if subscribed is observer:
                return index
        return None

    def observers(self) -> List[ParameterObserver]:
        return list(self._subscriptions.values())

    def observe(self, record: ObservedValue) -> None:
        """Deliver a record to every subscriber, in subscription order."""
        if not self._subscriptions:
            return
        for observer in list(self._subscriptions.values()):
            try:
                observer.on_next(record)
            except Exception as e:
                logger.warning(f"Observer {type(observer).__name__} failed on "
                               f"{self._owner_name()}::{record.name} (step={record.step}): {e}")
                observer.on_error(e)
                if get_settings().strict_observers:
                    raise

    def complete(self) -> None:
        """Signal the end of the stream to every subscriber."""
        for observer in list(self._subscriptions.values()):
            observer.on_complete()

    def clear(self) -> None:
        """Drop every subscription."""
        self._subscriptions.clear()

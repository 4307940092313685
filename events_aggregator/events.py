"""
Event model shared by every actor of the aggregator.

An EventSet holds one counter for every valid (Category, Action) pair. Its
persisted form is a nested mapping ``{Category: {Action: count}}``; names the
running code does not know are kept aside and written back untouched so a
newer producer's counters survive a round-trip through an older aggregator.
"""
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, field_validator

# Counters are persisted as uint32.
MAX_COUNTER = 2 ** 32 - 1


class Category(str, Enum):
    VOLUME = "Volume"
    POOL = "Pool"
    REPLICA = "Replica"
    NEXUS = "Nexus"


class Action(str, Enum):
    CREATED = "Created"
    DELETED = "Deleted"
    CHANGED = "Changed"


VALID_ACTIONS: Dict[Category, Tuple[Action, ...]] = {
    Category.VOLUME: (Action.CREATED, Action.DELETED),
    Category.POOL: (Action.CREATED, Action.DELETED),
    Category.REPLICA: (Action.CREATED, Action.DELETED),
    Category.NEXUS: (Action.CREATED, Action.DELETED, Action.CHANGED),
}

COUNTER_KEYS: Tuple[Tuple[Category, Action], ...] = tuple(
    (category, action) for category, actions in VALID_ACTIONS.items() for action in actions
)


class InvalidCounterKey(ValueError):
    """The action is not tracked for the category."""

    def __init__(self, category, action):
        super().__init__(f"Invalid action '{_name(action)}' for category '{_name(category)}'")
        self.category = category
        self.action = action


class EventSetDecodeError(ValueError):
    pass


def _name(value) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def lookup(enum_cls: Type[Enum], value) -> Optional[Enum]:
    """Case-insensitive member lookup; producers emit both `volume` and `Volume`."""
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    wanted = value.strip().lower()
    for member in enum_cls:
        if member.value.lower() == wanted:
            return member
    return None


def _persisted(enum_cls: Type[Enum], value) -> Optional[Enum]:
    # Stored names match exactly; any other spelling belongs to another writer.
    try:
        return enum_cls(value)
    except ValueError:
        return None


class EventMessage(BaseModel):
    """A lifecycle event as published on the bus. `id` is for log correlation only."""

    id: str
    category: Category
    action: Action
    target: str
    node: str

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value):
        return lookup(Category, value) or value

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value):
        return lookup(Action, value) or value


class EventSet:
    """Counters for every (Category, Action) pair, plus unknown persisted counters."""

    def __init__(self, counters: Optional[Mapping[Tuple[Category, Action], int]] = None,
                 extra: Optional[Mapping[str, Mapping[str, int]]] = None):
        self._counters: Dict[Tuple[Category, Action], int] = dict.fromkeys(COUNTER_KEYS, 0)
        for (category, action), value in (counters or {}).items():
            if (category, action) not in self._counters:
                raise InvalidCounterKey(category, action)
            self._counters[(category, action)] = value
        self._extra: Dict[str, Dict[str, int]] = {
            category: dict(actions) for category, actions in (extra or {}).items()
        }

    def get(self, category: Category, action: Action) -> int:
        try:
            return self._counters[(category, action)]
        except KeyError:
            raise InvalidCounterKey(category, action) from None

    def increment(self, category: Category, action: Action) -> int:
        key = (category, action)
        if key not in self._counters:
            raise InvalidCounterKey(category, action)
        # Saturate rather than wrap past the persisted width.
        value = min(self._counters[key] + 1, MAX_COUNTER)
        self._counters[key] = value
        return value

    def items(self) -> Iterator[Tuple[Tuple[Category, Action], int]]:
        for key in COUNTER_KEYS:
            yield key, self._counters[key]

    @property
    def extra(self) -> Dict[str, Dict[str, int]]:
        return {category: dict(actions) for category, actions in self._extra.items()}

    def copy(self) -> "EventSet":
        return EventSet(self._counters, self._extra)

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        """Encodes into the persisted `events` mapping."""
        encoded: Dict[str, Dict[str, int]] = {}
        for category, actions in self._extra.items():
            encoded[category] = dict(actions)
        for (category, action), value in self.items():
            encoded.setdefault(category.value, {})[action.value] = value
        return encoded

    @classmethod
    def from_dict(cls, events: Optional[Mapping]) -> "EventSet":
        """
        Decodes the persisted `events` mapping. Missing known counters start at
        zero; unknown categories and actions are preserved verbatim. Names are
        matched exactly, so `volume` is kept as an unknown category rather than
        folded into `Volume`.
        """
        if events is None:
            return cls()
        if not isinstance(events, Mapping):
            raise EventSetDecodeError(f"events must be a mapping, got {type(events).__name__}")

        counters: Dict[Tuple[Category, Action], int] = {}
        extra: Dict[str, Dict[str, int]] = {}
        for category_name, actions in events.items():
            if not isinstance(actions, Mapping):
                raise EventSetDecodeError(f"actions of '{category_name}' must be a mapping")
            category = _persisted(Category, category_name)
            for action_name, value in actions.items():
                value = _decode_counter(category_name, action_name, value)
                action = _persisted(Action, action_name)
                if category is not None and action in VALID_ACTIONS[category]:
                    counters[(category, action)] = value
                else:
                    extra.setdefault(str(category_name), {})[str(action_name)] = value
        return cls(counters, extra)

    def __eq__(self, other):
        if not isinstance(other, EventSet):
            return NotImplemented
        return self._counters == other._counters and self._extra == other._extra

    def __repr__(self):
        return f"EventSet({self.to_dict()!r})"


def _decode_counter(category_name, action_name, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EventSetDecodeError(f"counter {category_name}.{action_name} is not an integer: {value!r}")
    if value < 0 or value > MAX_COUNTER:
        raise EventSetDecodeError(f"counter {category_name}.{action_name} out of range: {value}")
    return value

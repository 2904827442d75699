# agentgraph/state.py
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .errors import MergeTypeError

REPLACE = "replace"
APPEND = "append"

Reducer = Union[str, Callable[[Any, Any], Any]]


def _append(field: str, current: Any, update: Any) -> list:
    if current is None:
        current = []
    if not isinstance(current, (list, tuple)):
        raise MergeTypeError(field, f"append needs a list value, state holds {type(current).__name__}")
    if not isinstance(update, (list, tuple)):
        raise MergeTypeError(field, f"append needs a list update, got {type(update).__name__}")
    # always build a new list so earlier snapshots never see the change
    return list(current) + list(update)


class StateSchema:
    """Per-field merge policy for one graph definition.

    Fields without a declaration use ``replace``. ``append`` concatenates
    list values (message history and similar); any callable is used as a
    custom reducer ``fn(current_value, update) -> new_value``.
    """

    def __init__(self, reducers: Optional[Mapping[str, Reducer]] = None):
        self._reducers: Dict[str, Reducer] = {}
        for field, reducer in (reducers or {}).items():
            if not (reducer in (REPLACE, APPEND) or callable(reducer)):
                raise MergeTypeError(field, f"unknown reducer {reducer!r}")
            self._reducers[field] = reducer

    @property
    def reducers(self) -> Dict[str, Reducer]:
        return dict(self._reducers)

    def reducer_for(self, field: str) -> Reducer:
        return self._reducers.get(field, REPLACE)

    def merge(self, current: Mapping[str, Any], partial: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Return a new state with ``partial`` folded into ``current``."""
        merged = dict(current)
        if not partial:
            return merged
        for field, value in partial.items():
            reducer = self.reducer_for(field)
            if reducer == REPLACE:
                merged[field] = value
            elif reducer == APPEND:
                merged[field] = _append(field, merged.get(field), value)
            else:
                try:
                    merged[field] = reducer(merged.get(field), value)
                except Exception as e:
                    raise MergeTypeError(field, f"custom reducer failed: {e!r}") from e
        return merged


def merge(current: Mapping[str, Any], partial: Optional[Mapping[str, Any]], reducers: Optional[Mapping[str, Reducer]] = None) -> Dict[str, Any]:
    return StateSchema(reducers).merge(current, partial)

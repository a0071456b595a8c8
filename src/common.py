"""Common utilities and types for workflow manifold execution."""

from typing import Any, Mapping, Optional


class StepOutcome:
    """Outcome labels recorded for each navigate/execute step."""
    NAVIGATED = 'navigated'
    EXECUTED = 'executed'
    DELEGATED = 'delegated'
    LOW_CONFIDENCE = 'low_confidence'
    NO_CURRENT_REGION = 'no_current_region'
    NO_MATCH = 'no_match'
    ERROR = 'error'

    SUCCESS = frozenset({NAVIGATED, EXECUTED, DELEGATED})


def merge_state(base: Mapping[str, Any], updates: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Shallow-merge updates over base and return a new dict.

    Later write wins on key collision. Nested values are not merged,
    they are replaced whole. Neither input is modified.

    Raises:
        TypeError: If updates is not a mapping
    """
    if updates is None:
        return dict(base)
    if not isinstance(updates, Mapping):
        raise TypeError(
            f"State update must be a mapping, got {type(updates).__name__}"
        )
    merged = dict(base)
    merged.update(updates)
    return merged


def names_match(name: str, action: str) -> bool:
    """Case-insensitive exact comparison of a region/operator name and an action."""
    return name.lower() == action.lower()


def name_contains(name: str, action: str) -> bool:
    """Case-insensitive substring test: does name contain action."""
    return action.lower() in name.lower()

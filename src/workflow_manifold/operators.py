"""Workflow operators: named state transforms owned by a region."""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Union

logger = logging.getLogger(__name__)

State = dict[str, Any]
Transform = Callable[[State], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]


@dataclass(frozen=True)
class WorkflowOperator:
    """A named state transform.

    The transform receives the current state and returns the new state
    (or just the keys it changes). Coroutine functions and plain
    functions are both accepted.

    Attributes:
        name: Operator name, matched against intent actions
        transform: Callable taking the state and returning a mapping
    """
    name: str
    transform: Transform

    async def execute(self, state: State) -> Mapping[str, Any]:
        """Run the transform and return its result unmodified.

        Errors raised by the transform propagate to the caller.
        """
        logger.debug(f"[{self.name}] Executing operator")
        result = self.transform(state)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"WorkflowOperator({self.name})"

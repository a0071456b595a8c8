"""Workflow manifold: navigation and execution over a region graph.

The manifold tracks one current region and an accumulated state mapping.
For each prompt the injected classifier yields an intent that drives:

- navigate(): move to an adjacent region whose name matches the intent
  action (exact, then substring; case-insensitive)
- execute_workflow(): run the operator in the current region whose name
  equals the intent action (exact only; case-insensitive) and merge its
  result into the state

When the current region wraps an inner manifold, both calls are
delegated to it first. State produced inside an inner manifold is merged
upward into its parent.

Failures never raise out of navigate()/execute_workflow(); they return
False and leave a StepRecord in the trace saying why.
"""

import inspect
import logging
import weakref
from typing import Any, Iterable, Mapping, Optional

from common import StepOutcome, merge_state, name_contains, names_match
from config import DEFAULT_CONFIDENCE_THRESHOLD, DEFAULT_TRACE_LIMIT, EngineSettings
from intent import IntentClassifier, IntentResult
from workflow_manifold.operators import State, WorkflowOperator
from workflow_manifold.region import ManifoldRegion, NestedManifoldRegion
from workflow_manifold.trace import EXECUTE, NAVIGATE, ExecutionTrace, StepRecord

logger = logging.getLogger(__name__)


class WorkflowManifold:
    """Engine instance owning a region graph, a current region and state.

    Calls must be serialised per instance: one navigate/execute_workflow
    awaited to completion before the next.

    Attributes:
        classifier: Intent classifier queried once per call
        name: Label used in logs
        confidence_threshold: An intent must score above this to be accepted
        trace: Bounded history of navigate/execute calls
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        name: str = 'manifold',
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        initial_state: Optional[Mapping[str, Any]] = None,
        trace_limit: int = DEFAULT_TRACE_LIMIT,
    ):
        self.classifier = classifier
        self.name = name
        self.confidence_threshold = confidence_threshold
        self._regions: dict[str, ManifoldRegion] = {}
        self._current: Optional[ManifoldRegion] = None
        self._state: State = dict(initial_state or {})
        self._parent_ref: Optional[weakref.ref] = None
        self.trace = ExecutionTrace(limit=trace_limit)

    @classmethod
    def from_settings(cls, classifier: IntentClassifier, settings: EngineSettings,
                      name: str = 'manifold') -> 'WorkflowManifold':
        """Create a manifold using threshold and trace limit from settings."""
        return cls(
            classifier,
            name=name,
            confidence_threshold=settings.confidence_threshold,
            trace_limit=settings.trace_limit,
        )

    @property
    def regions(self) -> dict[str, ManifoldRegion]:
        """Region table in insertion order."""
        return dict(self._regions)

    @property
    def current_region(self) -> Optional[ManifoldRegion]:
        return self._current

    @property
    def state(self) -> State:
        """Copy of the accumulated state."""
        return dict(self._state)

    @property
    def parent(self) -> Optional['WorkflowManifold']:
        """Outer manifold whose nested region wraps this one, if any.

        Held as a weak reference; only used to merge state upward.
        """
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @parent.setter
    def parent(self, manifold: Optional['WorkflowManifold']) -> None:
        self._parent_ref = weakref.ref(manifold) if manifold is not None else None

    def get_region(self, name: str) -> ManifoldRegion:
        """Get a region by name.

        Raises:
            KeyError: If region name not found
        """
        return self._regions[name]

    def add_region(self, region: ManifoldRegion) -> None:
        """Add a region to the table.

        The first region added becomes current. A region added under an
        existing name replaces the old one (and takes over as current if
        the old one was current).

        Raises:
            ValueError: If region is a nested region wrapping this manifold
        """
        nested = region.as_nested_delegate()
        if nested is not None and nested.manifold is self:
            raise ValueError(f"Nested region '{region.name}' cannot wrap its own manifold")

        previous = self._regions.get(region.name)
        self._regions[region.name] = region

        if previous is not None and previous is not region:
            logger.debug(f"[{self.name}] Region '{region.name}' replaced")
            if self._current is previous:
                self._current = region
            old_nested = previous.as_nested_delegate()
            if (old_nested is not None and old_nested.manifold.parent is self
                    and not self._wraps(old_nested.manifold)):
                old_nested.manifold.parent = None

        if self._current is None:
            self._current = region
            logger.debug(f"[{self.name}] Current region set to '{region.name}'")

        if nested is not None:
            nested.manifold.parent = self

    def add_regions(self, regions: Iterable[ManifoldRegion]) -> None:
        for region in regions:
            self.add_region(region)

    async def navigate(self, prompt: str) -> bool:
        """Move to the adjacent region matching the prompt's intent.

        Returns:
            True if the current region changed (here or inside a nested
            manifold), False otherwise
        """
        record = self.trace.begin(NAVIGATE, prompt, self._current_name())
        try:
            logger.info(f'[{self.name}] Navigating with prompt: "{prompt}"')

            nested = self._nested_current()
            if nested is not None and await nested.navigate(prompt):
                record.finish(StepOutcome.DELEGATED,
                              target=nested.manifold._current_name())
                return True

            intent = await self._classify(prompt, record)

            if intent.confidence <= self.confidence_threshold:
                logger.warning(
                    f'[{self.name}] Low confidence ({intent.confidence}) '
                    f'navigation attempt for prompt: "{prompt}"'
                )
                record.finish(StepOutcome.LOW_CONFIDENCE)
                return False

            if self._current is None:
                logger.warning(f'[{self.name}] No current region available for navigation')
                record.finish(StepOutcome.NO_CURRENT_REGION)
                return False

            target = self._find_adjacent(self._current, intent.action)
            if target is None:
                logger.warning(
                    f'[{self.name}] No matching region found for intent action: "{intent.action}"'
                )
                record.finish(StepOutcome.NO_MATCH)
                return False

            self._current = target
            logger.info(f'[{self.name}] Navigated to region: "{target.name}"')
            record.finish(StepOutcome.NAVIGATED, target=target.name)
            return True
        except Exception as e:
            logger.warning(f'[{self.name}] Navigation error: {e!r}')
            record.fail(_describe(e))
            return False

    async def execute_workflow(self, prompt: str) -> bool:
        """Run the current region's operator matching the prompt's intent.

        Returns:
            True if an operator ran and its result was merged into state
        """
        record = self.trace.begin(EXECUTE, prompt, self._current_name())
        try:
            nested = self._nested_current()
            if nested is not None:
                return await self._execute_nested(nested, prompt, record)

            intent = await self._classify(prompt, record)

            if self._current is None:
                logger.warning(f'[{self.name}] No current region available for execution')
                record.finish(StepOutcome.NO_CURRENT_REGION)
                return False

            operators = await self._current.get_valid_operators(dict(self._state))
            operator = _find_operator(operators, intent.action)
            if operator is None:
                logger.warning(
                    f'[{self.name}] No matching operator found for intent action: "{intent.action}"'
                )
                record.finish(StepOutcome.NO_MATCH)
                return False

            if intent.confidence <= self.confidence_threshold:
                logger.warning(
                    f'[{self.name}] Low confidence ({intent.confidence}) '
                    f'execution attempt for prompt: "{prompt}"'
                )
                record.finish(StepOutcome.LOW_CONFIDENCE)
                return False

            new_state = await operator.execute(dict(self._state))
            self._state = merge_state(self._state, new_state)

            parent = self.parent
            if parent is not None:
                parent._absorb_state(self._state)

            logger.info(
                f'[{self.name}] Executed operator "{operator.name}" '
                f'in region "{self._current.name}"'
            )
            record.finish(StepOutcome.EXECUTED, target=operator.name)
            return True
        except Exception as e:
            logger.warning(f'[{self.name}] Execution error: {e!r}')
            record.fail(_describe(e))
            return False

    async def step(self, prompt: str) -> tuple[bool, bool]:
        """Navigate, then execute, with the same prompt.

        Returns:
            (navigated, executed) tuple
        """
        navigated = await self.navigate(prompt)
        executed = await self.execute_workflow(prompt)
        return navigated, executed

    async def _execute_nested(self, nested: NestedManifoldRegion, prompt: str,
                              record: StepRecord) -> bool:
        """Delegate execution to a nested region and pull its state up."""
        result = await nested.execute_workflow(prompt)
        if result:
            self._state = merge_state(self._state, nested.manifold.state)
            record.finish(StepOutcome.DELEGATED, target=nested.name)
        else:
            inner = nested.manifold.trace.last
            record.finish(inner.outcome if inner else StepOutcome.NO_MATCH)
            if inner is not None:
                record.action = inner.action
                record.confidence = inner.confidence
                record.error = inner.error
        return result

    def _absorb_state(self, updates: Mapping[str, Any]) -> None:
        """Merge state propagated up from a nested manifold."""
        self._state = merge_state(self._state, updates)

    async def _classify(self, prompt: str, record: StepRecord) -> IntentResult:
        """Query the classifier and normalise its answer to an IntentResult."""
        result = self.classifier.query(prompt)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, Mapping):
            result = IntentResult.from_dict(dict(result))
        if not isinstance(result, IntentResult):
            raise TypeError(f"Classifier returned {type(result).__name__}, expected IntentResult")

        record.action = result.action
        record.confidence = result.confidence
        logger.info(
            f'[{self.name}] Matched intent: {result.action}, confidence: {result.confidence}'
        )
        return result

    def _find_adjacent(self, region: ManifoldRegion, action: str) -> Optional[ManifoldRegion]:
        """Find the adjacent region for an action: exact name first, then substring.

        Only regions present in this manifold's table are candidates.
        Ties resolve by edge insertion order.
        """
        candidates = [r for r in region.adjacent_regions if self._regions.get(r.name) is r]
        for candidate in candidates:
            if names_match(candidate.name, action):
                return candidate
        for candidate in candidates:
            if name_contains(candidate.name, action):
                return candidate
        return None

    def _wraps(self, manifold: 'WorkflowManifold') -> bool:
        """True if a region in the table is a nested region around manifold."""
        for region in self._regions.values():
            nested = region.as_nested_delegate()
            if nested is not None and nested.manifold is manifold:
                return True
        return False

    def _nested_current(self) -> Optional[NestedManifoldRegion]:
        if self._current is None:
            return None
        return self._current.as_nested_delegate()

    def _current_name(self) -> Optional[str]:
        return self._current.name if self._current is not None else None

    def to_dict(self) -> dict:
        """Summarise the manifold (regions, current region, state, trace)."""
        regions = []
        for region in self._regions.values():
            entry: dict[str, Any] = {
                'name': region.name,
                'adjacent': [r.name for r in region.adjacent_regions],
            }
            nested = region.as_nested_delegate()
            if nested is not None:
                entry['nested'] = nested.manifold.to_dict()
            else:
                entry['operators'] = [op.name for op in region.operators]
            regions.append(entry)
        return {
            'name': self.name,
            'current_region': self._current_name(),
            'state': dict(self._state),
            'regions': regions,
            'trace': self.trace.to_dict(),
        }

    def __repr__(self) -> str:
        return (f"WorkflowManifold({self.name}, regions={len(self._regions)}, "
                f"current={self._current_name()})")


def _find_operator(operators: list[WorkflowOperator], action: str) -> Optional[WorkflowOperator]:
    """First operator whose name equals the action (case-insensitive)."""
    for operator in operators:
        if names_match(operator.name, action):
            return operator
    return None


def _describe(error: Exception) -> str:
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__

"""Regions of the workflow graph.

A region is a named container of operators with undirected edges to
adjacent regions. A nested region stands in for a whole inner manifold:
operator and navigation queries are forwarded to it.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from workflow_manifold.operators import State, WorkflowOperator

if TYPE_CHECKING:
    from workflow_manifold.engine import WorkflowManifold

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ManifoldRegion:
    """A named state in the workflow graph.

    Regions compare and hash by identity so they can be members of
    each other's adjacency.

    Attributes:
        name: Region name, matched against intent actions when navigating
        operators: Operators in insertion order (duplicate names allowed)
        adjacent: Adjacent regions in edge insertion order (dict used as
            an ordered set)
    """
    name: str
    operators: list[WorkflowOperator] = field(default_factory=list)
    adjacent: dict['ManifoldRegion', None] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        # Own the list; callers may reuse theirs
        self.operators = list(self.operators)

    @property
    def adjacent_regions(self) -> list['ManifoldRegion']:
        """Adjacent regions in edge insertion order."""
        return list(self.adjacent)

    def add_operator(self, operator: WorkflowOperator) -> None:
        self.operators.append(operator)

    def connect_to(self, other: 'ManifoldRegion') -> None:
        """Connect this region and other in both directions (idempotent)."""
        self.adjacent[other] = None
        other.adjacent[self] = None

    def connect_all(self, others: Iterable['ManifoldRegion']) -> None:
        for other in others:
            self.connect_to(other)

    def is_adjacent(self, other: 'ManifoldRegion') -> bool:
        return other in self.adjacent

    async def get_valid_operators(self, state: State) -> list[WorkflowOperator]:
        """Return the operators usable in the given state.

        The base region does not filter; state is accepted so subclasses
        can.
        """
        return list(self.operators)

    def as_nested_delegate(self) -> Optional['NestedManifoldRegion']:
        """Return the nested region to delegate to, or None for a plain region."""
        return None

    def __repr__(self) -> str:
        return f"ManifoldRegion({self.name}, operators={len(self.operators)})"


class NestedManifoldRegion(ManifoldRegion):
    """A region that wraps an inner manifold.

    From the outer graph it is a single region that can be navigated
    into through its own adjacency. Once current, operator lookup,
    navigation and execution go to the inner manifold; the region's own
    operators are not consulted.

    Attributes:
        manifold: The wrapped inner manifold
    """

    def __init__(self, name: str, manifold: 'WorkflowManifold',
                 operators: Optional[list[WorkflowOperator]] = None):
        super().__init__(name, operators or [])
        if manifold is None:
            raise ValueError(f"Nested region '{name}' requires an inner manifold")
        self.manifold = manifold

    def as_nested_delegate(self) -> 'NestedManifoldRegion':
        return self

    async def get_valid_operators(self, state: State) -> list[WorkflowOperator]:
        inner_current = self.manifold.current_region
        if inner_current is None:
            return []
        return await inner_current.get_valid_operators(state)

    async def navigate(self, prompt: str) -> bool:
        logger.debug(f"[{self.name}] Delegating navigation to nested manifold")
        return await self.manifold.navigate(prompt)

    async def execute_workflow(self, prompt: str) -> bool:
        logger.debug(f"[{self.name}] Delegating execution to nested manifold")
        return await self.manifold.execute_workflow(prompt)

    def __repr__(self) -> str:
        return f"NestedManifoldRegion({self.name}, inner={self.manifold!r})"

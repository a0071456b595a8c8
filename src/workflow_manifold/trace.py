"""Step tracing for workflow manifolds.

Records one StepRecord per navigate/execute call so callers can tell why
a call returned False (low confidence, no match, classifier or operator
error). Kept in memory only, bounded by a maximum length.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

from common import StepOutcome

logger = logging.getLogger(__name__)

NAVIGATE = 'navigate'
EXECUTE = 'execute'


@dataclass
class StepRecord:
    """One navigate or execute call.

    Attributes:
        kind: 'navigate' or 'execute'
        prompt: Prompt passed by the caller
        region: Current region name when the call started
        action: Classifier action (None if not reached)
        confidence: Classifier confidence (None if not reached)
        outcome: StepOutcome label once finished
        target: Region navigated to, or operator executed
        error: Error message for failed calls
        started_at: Timestamp when the call started
        completed_at: Timestamp when the call finished
    """
    kind: str
    prompt: str
    region: Optional[str] = None
    action: Optional[str] = None
    confidence: Optional[float] = None
    outcome: Optional[str] = None
    target: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def start(self) -> None:
        self.started_at = time.time()

    def finish(self, outcome: str, target: Optional[str] = None) -> None:
        self.outcome = outcome
        self.completed_at = time.time()
        if target is not None:
            self.target = target

    def fail(self, error: str) -> None:
        self.finish(StepOutcome.ERROR)
        self.error = error

    @property
    def success(self) -> bool:
        return self.outcome in StepOutcome.SUCCESS

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'kind': self.kind,
            'prompt': self.prompt,
            'outcome': self.outcome,
            'success': self.success,
        }
        if self.region is not None:
            d['region'] = self.region
        if self.action is not None:
            d['action'] = self.action
        if self.confidence is not None:
            d['confidence'] = self.confidence
        if self.target is not None:
            d['target'] = self.target
        if self.error is not None:
            d['error'] = self.error
        if self.duration is not None:
            d['duration'] = round(self.duration, 6)
        return d


class ExecutionTrace:
    """Bounded history of step records for one manifold."""

    def __init__(self, limit: int = 1000):
        self.limit = limit
        self._records: deque[StepRecord] = deque(maxlen=limit)

    def begin(self, kind: str, prompt: str, region: Optional[str]) -> StepRecord:
        """Start and register a new record."""
        record = StepRecord(kind=kind, prompt=prompt, region=region)
        record.start()
        if len(self._records) == self.limit:
            dropped = self._records[0]
            logger.debug(
                f'Trace full ({self.limit}), dropping oldest {dropped.kind} step: "{dropped.prompt}"'
            )
        self._records.append(record)
        return record

    @property
    def records(self) -> list[StepRecord]:
        return list(self._records)

    @property
    def last(self) -> Optional[StepRecord]:
        return self._records[-1] if self._records else None

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def to_dict(self) -> dict:
        return {
            'limit': self.limit,
            'steps': [r.to_dict() for r in self._records],
        }

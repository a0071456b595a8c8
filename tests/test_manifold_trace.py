"""Tests for workflow_manifold.trace module."""

import asyncio
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from common import StepOutcome
from intent import KeywordIntentMap
from workflow_manifold.engine import WorkflowManifold
from workflow_manifold.region import ManifoldRegion
from workflow_manifold.trace import EXECUTE, NAVIGATE, ExecutionTrace, StepRecord


class TestStepRecord:
    """Tests for StepRecord."""

    def test_initial_state(self):
        record = StepRecord(kind=NAVIGATE, prompt='p')
        assert record.outcome is None
        assert record.success is False
        assert record.duration is None

    def test_finish(self):
        record = StepRecord(kind=NAVIGATE, prompt='p')
        record.start()
        record.finish(StepOutcome.NAVIGATED, target='analysis')
        assert record.success is True
        assert record.target == 'analysis'
        assert record.duration is not None
        assert record.duration >= 0

    def test_fail(self):
        record = StepRecord(kind=EXECUTE, prompt='p')
        record.start()
        record.fail('RuntimeError: boom')
        assert record.outcome == StepOutcome.ERROR
        assert record.error == 'RuntimeError: boom'
        assert record.success is False

    def test_to_dict_omits_unset_fields(self):
        record = StepRecord(kind=NAVIGATE, prompt='p')
        record.finish(StepOutcome.LOW_CONFIDENCE)
        d = record.to_dict()
        assert d == {
            'kind': 'navigate',
            'prompt': 'p',
            'outcome': 'low_confidence',
            'success': False,
        }

    def test_to_dict_full(self):
        record = StepRecord(kind=EXECUTE, prompt='p', region='analysis',
                            action='analysis', confidence=0.9)
        record.start()
        record.finish(StepOutcome.EXECUTED, target='analysis')
        d = record.to_dict()
        assert d['region'] == 'analysis'
        assert d['action'] == 'analysis'
        assert d['confidence'] == 0.9
        assert d['target'] == 'analysis'
        assert d['success'] is True
        assert 'duration' in d
        assert 'error' not in d


class TestExecutionTrace:
    """Tests for ExecutionTrace."""

    def test_begin_registers_started_record(self):
        trace = ExecutionTrace()
        record = trace.begin(NAVIGATE, 'p', 'start')
        assert trace.last is record
        assert record.region == 'start'
        assert record.started_at is not None
        assert len(trace) == 1

    def test_empty(self):
        trace = ExecutionTrace()
        assert trace.last is None
        assert trace.records == []
        assert trace.to_dict() == {'limit': 1000, 'steps': []}

    def test_bounded(self):
        trace = ExecutionTrace(limit=3)
        for i in range(5):
            trace.begin(EXECUTE, f'p{i}', None)
        assert len(trace) == 3
        assert [r.prompt for r in trace.records] == ['p2', 'p3', 'p4']

    def test_eviction_logged(self, caplog):
        trace = ExecutionTrace(limit=2)
        with caplog.at_level(logging.DEBUG, logger='workflow_manifold.trace'):
            trace.begin(EXECUTE, 'p0', None)
            trace.begin(EXECUTE, 'p1', None)
            assert caplog.records == []
            trace.begin(EXECUTE, 'p2', None)
        assert len(caplog.records) == 1
        assert 'dropping oldest execute step: "p0"' in caplog.records[0].getMessage()

    def test_clear(self):
        trace = ExecutionTrace()
        trace.begin(EXECUTE, 'p', None)
        trace.clear()
        assert len(trace) == 0

    def test_records_is_copy(self):
        trace = ExecutionTrace()
        trace.begin(EXECUTE, 'p', None)
        trace.records.clear()
        assert len(trace) == 1


class TestManifoldTrace:
    """Tests for trace records produced by a manifold."""

    def test_one_record_per_call(self):
        manifold = WorkflowManifold(KeywordIntentMap(), trace_limit=10)
        manifold.add_region(ManifoldRegion('analysis'))

        asyncio.run(manifold.navigate('analyze'))
        asyncio.run(manifold.execute_workflow('analyze'))

        kinds = [r.kind for r in manifold.trace.records]
        assert kinds == [NAVIGATE, EXECUTE]
        assert manifold.trace.limit == 10

    def test_records_classifier_answer(self):
        manifold = WorkflowManifold(KeywordIntentMap())
        manifold.add_region(ManifoldRegion('start'))

        asyncio.run(manifold.navigate('unknown operation'))

        last = manifold.trace.last
        assert last.action == 'unknown'
        assert last.confidence == 0.1
        assert last.outcome == StepOutcome.LOW_CONFIDENCE
        assert last.region == 'start'

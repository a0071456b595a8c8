#!/usr/bin/env python3
"""Tests for common.py - shared utilities.

Tests verify:
1. merge_state shallow-merge contract (later write wins)
2. Case-insensitive name matching helpers
3. StepOutcome success set
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from common import StepOutcome, merge_state, name_contains, names_match


class TestMergeState:
    """Test merge_state utility."""

    def test_later_value_wins(self):
        """Colliding keys take the update's value."""
        merged = merge_state({'a': 1, 'b': 2}, {'b': 3})
        assert merged == {'a': 1, 'b': 3}

    def test_keeps_absent_keys(self):
        """Keys missing from the update are kept unchanged."""
        merged = merge_state({'a': 1, 'keep': 'x'}, {'a': 2})
        assert merged['keep'] == 'x'

    def test_is_shallow(self):
        """Nested mappings are replaced whole, not merged."""
        merged = merge_state({'cfg': {'x': 1, 'y': 2}}, {'cfg': {'x': 5}})
        assert merged == {'cfg': {'x': 5}}

    def test_does_not_modify_inputs(self):
        base = {'a': 1}
        updates = {'b': 2}
        merged = merge_state(base, updates)
        assert base == {'a': 1}
        assert updates == {'b': 2}
        assert merged is not base

    def test_none_update_copies_base(self):
        base = {'a': 1}
        merged = merge_state(base, None)
        assert merged == base
        assert merged is not base

    def test_non_mapping_update_raises(self):
        with pytest.raises(TypeError, match="must be a mapping"):
            merge_state({}, ['not', 'a', 'mapping'])


class TestNameMatching:
    """Test name matching helpers."""

    def test_names_match_ignores_case(self):
        assert names_match('Analysis', 'analysis') is True
        assert names_match('analysis', 'ANALYSIS') is True

    def test_names_match_is_exact(self):
        assert names_match('analysis-region', 'analysis') is False

    def test_name_contains_substring(self):
        assert name_contains('processingRegion', 'processing') is True
        assert name_contains('ProcessingRegion', 'PROCESSING') is True

    def test_name_contains_miss(self):
        assert name_contains('sampleRegion', 'unknown') is False


class TestStepOutcome:
    """Test StepOutcome labels."""

    def test_success_outcomes(self):
        assert StepOutcome.NAVIGATED in StepOutcome.SUCCESS
        assert StepOutcome.EXECUTED in StepOutcome.SUCCESS
        assert StepOutcome.DELEGATED in StepOutcome.SUCCESS

    def test_failure_outcomes(self):
        for outcome in (StepOutcome.LOW_CONFIDENCE, StepOutcome.NO_MATCH,
                        StepOutcome.NO_CURRENT_REGION, StepOutcome.ERROR):
            assert outcome not in StepOutcome.SUCCESS

"""Shared pytest fixtures for workflow-manifold tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


@pytest.fixture(autouse=True)
def _no_env_settings(monkeypatch):
    """Keep a developer's MANIFOLD_CONFIG from leaking into tests."""
    monkeypatch.delenv('MANIFOLD_CONFIG', raising=False)


@pytest.fixture
def config_dir(tmp_path):
    """Create a temporary config directory.

    Creates:
    - settings.yaml (engine, logging and classifier sections)
    - intents.yaml (small keyword table)
    """
    (tmp_path / 'settings.yaml').write_text("""
engine:
  confidence_threshold: 0.6
  trace_limit: 50
logging:
  level: debug
classifier:
  intents: intents.yaml
  timeout: 5
""")

    (tmp_path / 'intents.yaml').write_text("""
intents:
  - keyword: ingest
    action: ingestion
    confidence: 0.95
  - keyword: report
    action: reporting
    confidence: 0.75
  - keyword: maybe
    action: reporting
    confidence: 0.4
""")

    return tmp_path


@pytest.fixture
def workflow_file(tmp_path):
    """Workflow definition with a nested region, written as YAML."""
    path = tmp_path / 'pipeline.yaml'
    path.write_text("""
name: pipeline
description: Test pipeline
regions:
  - name: analysis
    operators:
      - name: analysis
        sets: analyzed
  - name: preprocessing
    nested:
      name: preprocess
      regions:
        - name: validation
          operators:
            - name: validation
              sets: validated
        - name: cleaning
          operators:
            - name: cleaning
              update:
                rows_dropped: 3
      edges:
        - [validation, cleaning]
  - name: transformation
    operators:
      - transformation
edges:
  - [analysis, preprocessing]
  - from: analysis
    to: transformation
""")
    return path

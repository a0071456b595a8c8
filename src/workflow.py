"""Workflow definition loading and validation.

A workflow definition describes a region graph declaratively:

    name: main
    regions:
      - name: analysis
        operators:
          - name: analysis
            sets: analyzed            # state['analyzed'] = True
      - name: preprocessing
        nested:                       # full inner definition
          name: preprocess
          regions: [...]
          edges: [...]
    edges:
      - [preprocessing, analysis]

Operators set flags (sets: key) and/or merge fixed values (update: {...}).
Edges are undirected. Connectivity and cycles are not checked.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from config import ConfigError, EngineSettings, parse_yaml
from intent import IntentClassifier
from workflow_manifold.engine import WorkflowManifold
from workflow_manifold.operators import State, WorkflowOperator
from workflow_manifold.region import ManifoldRegion, NestedManifoldRegion

logger = logging.getLogger(__name__)


@dataclass
class OperatorDef:
    """A declared operator.

    Attributes:
        name: Operator name
        sets: State key set to True when the operator runs
        update: Fixed key/values merged into state when the operator runs
    """
    name: str
    sets: Optional[str] = None
    update: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str) -> 'OperatorDef':
        """Create OperatorDef from a dict or a bare name string."""
        if isinstance(data, str):
            return cls(name=data)
        if not isinstance(data, dict):
            raise ConfigError(f"{where}: operator must be a name or a mapping")
        if not data.get('name'):
            raise ConfigError(f"{where}: operator missing required field: name")
        update = data.get('update') or {}
        if not isinstance(update, dict):
            raise ConfigError(f"{where}: operator '{data['name']}' update must be a mapping")
        return cls(name=str(data['name']), sets=data.get('sets'), update=dict(update))

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'name': self.name}
        if self.sets is not None:
            d['sets'] = self.sets
        if self.update:
            d['update'] = dict(self.update)
        return d

    def build(self) -> WorkflowOperator:
        """Create the WorkflowOperator for this definition."""
        return WorkflowOperator(self.name, make_transform(sets=self.sets, update=self.update))


def make_transform(sets: Optional[str] = None, update: Optional[dict[str, Any]] = None):
    """Return an async transform that sets a flag and/or merges fixed values."""
    fixed = dict(update or {})

    async def transform(state: State) -> State:
        new_state = dict(state)
        new_state.update(fixed)
        if sets:
            new_state[sets] = True
        return new_state

    return transform


@dataclass
class RegionDef:
    """A declared region: plain (operators) or nested (inner workflow)."""
    name: str
    operators: list[OperatorDef] = field(default_factory=list)
    nested: Optional['Workflow'] = None

    @property
    def is_nested(self) -> bool:
        return self.nested is not None

    @classmethod
    def from_dict(cls, data: Any, where: str) -> 'RegionDef':
        if not isinstance(data, dict):
            raise ConfigError(f"{where}: region must be a mapping")
        if not data.get('name'):
            raise ConfigError(f"{where}: region missing required field: name")
        name = str(data['name'])
        where = f"{where} ({name})"

        if 'operators' in data and 'nested' in data:
            raise ConfigError(f"{where}: region cannot declare both operators and nested")

        if 'nested' in data:
            nested = Workflow.from_dict(data['nested'], where=f"{where} nested")
            return cls(name=name, nested=nested)

        ops_data = data.get('operators') or []
        if not isinstance(ops_data, list):
            raise ConfigError(f"{where}: operators must be a list")
        operators = [
            OperatorDef.from_dict(op, f"{where} operator {i}")
            for i, op in enumerate(ops_data)
        ]
        return cls(name=name, operators=operators)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'name': self.name}
        if self.nested is not None:
            d['nested'] = self.nested.to_dict()
        else:
            d['operators'] = [op.to_dict() for op in self.operators]
        return d


@dataclass
class Workflow:
    """A region graph definition.

    Attributes:
        name: Workflow identifier (also the built manifold's name)
        regions: Region definitions; the first one starts as current
        edges: Undirected (a, b) region-name pairs
        description: Optional human-readable description
        source_path: File the definition was loaded from, if any
    """
    name: str
    regions: list[RegionDef]
    edges: list[tuple[str, str]] = field(default_factory=list)
    description: str = ''
    source_path: Optional[Path] = None

    @property
    def depth(self) -> int:
        """Nesting depth (1 for a workflow without nested regions)."""
        inner = [r.nested.depth for r in self.regions if r.nested is not None]
        return 1 + max(inner, default=0)

    @classmethod
    def from_dict(cls, data: Any, source_path: Optional[Path] = None,
                  where: str = 'workflow') -> 'Workflow':
        """Create Workflow from a parsed definition.

        Raises:
            ConfigError: If the definition is malformed
        """
        if not isinstance(data, dict):
            raise ConfigError(f"{where}: definition must be a mapping")
        if not data.get('name'):
            raise ConfigError(f"{where}: missing required field: name")
        name = str(data['name'])

        regions_data = data.get('regions')
        if not isinstance(regions_data, list) or not regions_data:
            raise ConfigError(f"Workflow '{name}' must have at least one region")
        regions = [
            RegionDef.from_dict(r, f"Workflow '{name}' region {i}")
            for i, r in enumerate(regions_data)
        ]

        edges = _parse_edges(data.get('edges') or [], name)
        _validate_edges(edges, regions, name)

        return cls(
            name=name,
            regions=regions,
            edges=edges,
            description=data.get('description', ''),
            source_path=source_path,
        )

    @classmethod
    def from_json(cls, json_str: str) -> 'Workflow':
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid workflow JSON: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'name': self.name,
            'regions': [r.to_dict() for r in self.regions],
            'edges': [list(e) for e in self.edges],
        }
        if self.description:
            d['description'] = self.description
        return d

    def build(self, classifier: IntentClassifier,
              settings: Optional[EngineSettings] = None) -> WorkflowManifold:
        """Build a WorkflowManifold for this definition.

        Nested definitions get their own manifold sharing the classifier.
        Regions are added in declaration order; duplicate names replace
        earlier ones.
        """
        settings = settings or EngineSettings()
        manifold = WorkflowManifold.from_settings(classifier, settings, name=self.name)

        built: dict[str, ManifoldRegion] = {}
        for region_def in self.regions:
            if region_def.nested is not None:
                inner = region_def.nested.build(classifier, settings)
                region: ManifoldRegion = NestedManifoldRegion(region_def.name, inner)
            else:
                region = ManifoldRegion(
                    region_def.name,
                    [op.build() for op in region_def.operators],
                )
            built[region_def.name] = region
            manifold.add_region(region)

        for a, b in self.edges:
            built[a].connect_to(built[b])

        logger.debug(f"Built manifold '{self.name}' with {len(built)} regions")
        return manifold


def _parse_edges(edges_data: Any, name: str) -> list[tuple[str, str]]:
    """Normalise edges given as [a, b] pairs or {from, to} mappings."""
    if not isinstance(edges_data, list):
        raise ConfigError(f"Workflow '{name}' edges must be a list")
    edges: list[tuple[str, str]] = []
    for i, edge in enumerate(edges_data):
        if isinstance(edge, dict) and 'from' in edge and 'to' in edge:
            edges.append((str(edge['from']), str(edge['to'])))
        elif isinstance(edge, (list, tuple)) and len(edge) == 2:
            edges.append((str(edge[0]), str(edge[1])))
        else:
            raise ConfigError(
                f"Workflow '{name}' edge {i} must be a [a, b] pair or a {{from, to}} mapping"
            )
    return edges


def _validate_edges(edges: list[tuple[str, str]], regions: list[RegionDef], name: str) -> None:
    """Check that every edge endpoint names a declared region.

    Raises:
        ConfigError: On an unknown endpoint
    """
    known = {r.name for r in regions}
    for a, b in edges:
        for endpoint in (a, b):
            if endpoint not in known:
                raise ConfigError(
                    f"Workflow '{name}' edge [{a}, {b}] references unknown region '{endpoint}'"
                )


def load_workflow(file_path: Optional[str] = None, json_str: Optional[str] = None) -> Workflow:
    """Load a workflow definition from a YAML/JSON file or an inline JSON string.

    Raises:
        ConfigError: If neither source is given or the definition is invalid
    """
    if json_str:
        return Workflow.from_json(json_str)
    if file_path:
        path = Path(file_path)
        workflow = Workflow.from_dict(parse_yaml(path), source_path=path)
        logger.debug(f"Loaded workflow '{workflow.name}' from {path}")
        return workflow
    raise ConfigError("No workflow specified (file path or JSON required)")


# Stock nested demonstration: preprocessing wraps validation <-> cleaning
DEMO_WORKFLOW: dict[str, Any] = {
    'name': 'main',
    'description': 'Nested preprocessing followed by analysis and transformation',
    'regions': [
        {
            'name': 'preprocessing',
            'nested': {
                'name': 'preprocess',
                'regions': [
                    {'name': 'validation', 'operators': [{'name': 'validation', 'sets': 'validated'}]},
                    {'name': 'cleaning', 'operators': [{'name': 'cleaning', 'sets': 'cleaned'}]},
                ],
                'edges': [['validation', 'cleaning']],
            },
        },
        {'name': 'analysis', 'operators': [{'name': 'analysis', 'sets': 'analyzed'}]},
        {'name': 'transformation', 'operators': [{'name': 'transformation', 'sets': 'transformed'}]},
    ],
    'edges': [
        ['preprocessing', 'analysis'],
        ['analysis', 'transformation'],
    ],
}

DEMO_PROMPTS: list[tuple[str, str]] = [
    ('validate the input', 'Nested: Data Validation'),
    ('clean the data', 'Nested: Data Cleaning'),
    ('analyze the results', 'Main: Data Analysis'),
    ('transform the output', 'Main: Data Transformation'),
]

"""Engine configuration management.

Settings are loaded from a YAML file:

    engine:
      confidence_threshold: 0.5
      trace_limit: 1000
    logging:
      level: INFO
    classifier:
      intents: intents.yaml
      url: https://classifier.example/intent
      timeout: 10

Resolution order for the settings file:
1. Explicit path (--config)
2. $MANIFOLD_CONFIG environment variable
3. config/settings.yaml in the repository root (dev workspace)
4. Built-in defaults

Relative paths inside the file (classifier.intents) are resolved against
the directory holding the settings file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

# Default gate an intent's confidence must exceed
DEFAULT_CONFIDENCE_THRESHOLD = 0.5
DEFAULT_TRACE_LIMIT = 1000
DEFAULT_CLASSIFIER_TIMEOUT = 10

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class EngineSettings:
    """Runtime settings for a workflow manifold.

    Attributes:
        confidence_threshold: Intents at or below this confidence are rejected
        trace_limit: Maximum step records kept per manifold (oldest dropped)
        log_level: Root log level name for the CLI
        intents_file: Optional YAML intent table for the keyword classifier
        classifier_url: Optional remote classifier endpoint (overrides intents_file)
        classifier_timeout: Request timeout in seconds for the remote classifier
        source: File the settings were loaded from (None for defaults)
    """
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    trace_limit: int = DEFAULT_TRACE_LIMIT
    log_level: str = 'INFO'
    intents_file: Optional[Path] = None
    classifier_url: Optional[str] = None
    classifier_timeout: int = DEFAULT_CLASSIFIER_TIMEOUT
    source: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.intents_file, str):
            self.intents_file = Path(self.intents_file)
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigError: If any value is out of range
        """
        if isinstance(self.confidence_threshold, bool) or \
                not isinstance(self.confidence_threshold, (int, float)):
            raise ConfigError(
                f"confidence_threshold must be a number, got {self.confidence_threshold!r}"
            )
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigError(
                f"confidence_threshold must be within [0, 1], got {self.confidence_threshold}"
            )
        if not isinstance(self.trace_limit, int) or self.trace_limit <= 0:
            raise ConfigError(f"trace_limit must be a positive integer, got {self.trace_limit!r}")
        if not isinstance(self.classifier_timeout, (int, float)) or self.classifier_timeout <= 0:
            raise ConfigError(
                f"classifier timeout must be positive, got {self.classifier_timeout!r}"
            )
        if str(self.log_level).upper() not in LOG_LEVELS:
            raise ConfigError(
                f"Unknown log level '{self.log_level}'. Use one of: {', '.join(LOG_LEVELS)}"
            )
        self.log_level = str(self.log_level).upper()

    @classmethod
    def from_dict(cls, data: Optional[dict], base_dir: Optional[Path] = None) -> 'EngineSettings':
        """Create EngineSettings from a parsed settings document."""
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("Settings must be a YAML object (dict)")

        engine = _section(data, 'engine')
        logging_cfg = _section(data, 'logging')
        classifier = _section(data, 'classifier')

        intents_file = classifier.get('intents')
        if intents_file:
            intents_file = Path(intents_file)
            if base_dir is not None and not intents_file.is_absolute():
                intents_file = base_dir / intents_file

        return cls(
            confidence_threshold=engine.get('confidence_threshold', DEFAULT_CONFIDENCE_THRESHOLD),
            trace_limit=engine.get('trace_limit', DEFAULT_TRACE_LIMIT),
            log_level=logging_cfg.get('level', 'INFO'),
            intents_file=intents_file,
            classifier_url=classifier.get('url'),
            classifier_timeout=classifier.get('timeout', DEFAULT_CLASSIFIER_TIMEOUT),
        )


def _section(data: dict, key: str) -> dict:
    """Return a sub-mapping of the settings document ({} if absent)."""
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Settings section '{key}' must be a mapping")
    return value


def parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents.

    Raises:
        ConfigError: If the file is missing or not valid YAML
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e


def get_base_dir() -> Path:
    """Get the repository directory."""
    return Path(__file__).parent.parent  # src/ -> repo/


def discover_settings_path() -> Optional[Path]:
    """Find the settings file, or None to use defaults.

    Raises:
        ConfigError: If $MANIFOLD_CONFIG points at a missing file
    """
    if env_path := os.environ.get('MANIFOLD_CONFIG'):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"MANIFOLD_CONFIG={env_path} does not exist")

    workspace = get_base_dir() / 'config' / 'settings.yaml'
    if workspace.exists():
        return workspace

    return None


def load_settings(path: Optional[Path] = None) -> EngineSettings:
    """Load engine settings.

    Args:
        path: Explicit settings file. Default: discovered via discover_settings_path()

    Returns:
        EngineSettings (defaults when no settings file exists)

    Raises:
        ConfigError: On missing explicit file, invalid YAML or invalid values
    """
    if path is None:
        path = discover_settings_path()
        if path is None:
            return EngineSettings()

    path = Path(path)
    settings = EngineSettings.from_dict(parse_yaml(path), base_dir=path.parent)
    settings.source = path
    return settings

"""Intent classification for prompt routing.

A classifier maps a prompt to an IntentResult (action label + confidence).
The engine only depends on the IntentClassifier protocol; two
implementations ship here:

- KeywordIntentMap: ordered keyword table, first keyword contained in the
  prompt wins (case-insensitive). Loadable from YAML.
- HttpIntentClassifier: POSTs the prompt to a remote service.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Iterable, Optional, Protocol, Union, runtime_checkable

import requests

from config import ConfigError, parse_yaml

logger = logging.getLogger(__name__)

UNKNOWN_ACTION = 'unknown'
UNKNOWN_CONFIDENCE = 0.1


class IntentError(Exception):
    """Classifier could not produce an intent."""


@dataclass(frozen=True)
class IntentResult:
    """Classifier output for one prompt.

    Attributes:
        action: Action label matched against region/operator names
        confidence: Score in [0, 1]
    """
    action: str
    confidence: float

    def __post_init__(self):
        if not isinstance(self.action, str):
            raise ValueError(f"Intent action must be a string, got {self.action!r}")
        if isinstance(self.confidence, bool) or not isinstance(self.confidence, (int, float)):
            raise ValueError(f"Intent confidence must be a number, got {self.confidence!r}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Intent confidence must be within [0, 1], got {self.confidence}")

    @classmethod
    def from_dict(cls, data: dict) -> 'IntentResult':
        """Create IntentResult from a {'action', 'confidence'} dict."""
        return cls(action=data['action'], confidence=data['confidence'])

    def to_dict(self) -> dict:
        return {'action': self.action, 'confidence': self.confidence}


UNKNOWN_INTENT = IntentResult(UNKNOWN_ACTION, UNKNOWN_CONFIDENCE)


@runtime_checkable
class IntentClassifier(Protocol):
    """Protocol for classifiers that implement query()."""

    def query(self, prompt: str) -> Union[IntentResult, Awaitable[IntentResult]]:
        """Classify a prompt. May return the result or an awaitable of it."""


# Stock keyword table, checked in order
DEFAULT_INTENTS: list[tuple[str, IntentResult]] = [
    ('analyze', IntentResult('analysis', 0.9)),
    ('process', IntentResult('processing', 0.8)),
    ('transform', IntentResult('transformation', 0.7)),
    ('validate', IntentResult('validation', 0.85)),
    ('clean', IntentResult('cleaning', 0.85)),
    ('test', IntentResult('testOperation', 0.9)),
    ('operator1', IntentResult('operator1', 0.9)),
    ('operator2', IntentResult('operator2', 0.9)),
]


class KeywordIntentMap:
    """Rule-table classifier: first keyword found in the prompt wins.

    Matching is a case-insensitive substring test over the rules in
    order. Prompts matching no rule get UNKNOWN_INTENT.
    """

    def __init__(self, rules: Optional[Iterable[tuple[str, IntentResult]]] = None):
        if rules is None:
            rules = DEFAULT_INTENTS
        self._rules: list[tuple[str, IntentResult]] = [
            (keyword.lower(), intent) for keyword, intent in rules
        ]

    @property
    def rules(self) -> list[tuple[str, IntentResult]]:
        return list(self._rules)

    async def query(self, prompt: str) -> IntentResult:
        text = prompt.lower()
        for keyword, intent in self._rules:
            if keyword in text:
                return intent
        return UNKNOWN_INTENT

    @classmethod
    def from_dict(cls, data: dict) -> 'KeywordIntentMap':
        """Create a KeywordIntentMap from an intent document.

        Expected shape:
            intents:
              - keyword: analyze
                action: analysis
                confidence: 0.9

        Raises:
            ConfigError: If the document is malformed
        """
        if not isinstance(data, dict):
            raise ConfigError("Intent table must be a YAML object (dict)")
        entries = data.get('intents')
        if not isinstance(entries, list) or not entries:
            raise ConfigError("Intent table requires a non-empty 'intents' list")

        rules: list[tuple[str, IntentResult]] = []
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ConfigError(f"Intent {i} must be a mapping")
            for key in ('keyword', 'action', 'confidence'):
                if key not in entry:
                    raise ConfigError(f"Intent {i} missing required field: {key}")
            keyword = entry['keyword']
            if not isinstance(keyword, str) or not keyword:
                raise ConfigError(f"Intent {i} keyword must be a non-empty string")
            try:
                intent = IntentResult(action=entry['action'], confidence=entry['confidence'])
            except ValueError as e:
                raise ConfigError(f"Intent {i} ({keyword}): {e}") from e
            rules.append((keyword, intent))
        return cls(rules)


def load_intent_map(path: Path) -> KeywordIntentMap:
    """Load a keyword intent table from a YAML file.

    Raises:
        ConfigError: If the file is missing or malformed
    """
    intent_map = KeywordIntentMap.from_dict(parse_yaml(Path(path)))
    logger.debug(f"Loaded {len(intent_map.rules)} intents from {path}")
    return intent_map


class HttpIntentClassifier:
    """Classifier backed by a remote HTTP service.

    Sends POST {url} with {"prompt": ...} and expects a JSON body
    {"action": str, "confidence": float}. The blocking request runs in a
    worker thread so the event loop is not blocked.
    """

    def __init__(self, url: str, timeout: float = 10, token: Optional[str] = None):
        """Initialize the classifier client.

        Args:
            url: Classifier endpoint
            timeout: Request timeout in seconds
            token: Optional bearer token
        """
        self.url = url
        self.timeout = timeout
        self.token = token

    def _headers(self) -> dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def classify(self, prompt: str) -> IntentResult:
        """Classify synchronously.

        Raises:
            IntentError: On transport errors, non-200 responses or bad payloads
        """
        try:
            resp = requests.post(
                self.url,
                json={'prompt': prompt},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise IntentError(f"Timeout ({self.timeout}s) contacting classifier at {self.url}") from e
        except requests.exceptions.RequestException as e:
            raise IntentError(f"Cannot reach classifier at {self.url}: {e}") from e

        if resp.status_code != 200:
            raise IntentError(
                f"Classifier returned {resp.status_code}: {resp.text[:100]}"
            )

        try:
            payload: Any = resp.json()
            return IntentResult.from_dict(payload)
        except (ValueError, KeyError, TypeError) as e:
            raise IntentError(f"Invalid classifier response: {e}") from e

    async def query(self, prompt: str) -> IntentResult:
        return await asyncio.to_thread(self.classify, prompt)

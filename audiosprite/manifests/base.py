"""Abstract base manifest builder and schema validation.

WHY: Every manifest shape consumes the same Timeline but emits different
JSON for a different playback library. This base class enforces a
consistent interface so the pipeline, CLI, and HTTP API can work with
any schema generically.

HOW: BaseManifest is an ABC with a ``name`` property, a ``schema_file``
class attribute, and a ``build()`` method. validate() checks the built
dict against the JSON Schema shipped in manifests/schemas/ using
jsonschema.

RULES:
- Subclasses MUST implement ``name`` and ``build()`` and set ``schema_file``
- build() is pure: no I/O, no mutation of the Timeline
- Times passed to builders are seconds; builders convert as their
  consumer expects
- Resource paths are already rewritten by the caller when a public
  path prefix is configured

To add a new manifest schema:
1. Add a member to core.models.ManifestFormat
2. Create a module in manifests/ subclassing BaseManifest
3. Add its JSON Schema to manifests/schemas/
4. Register it in MANIFESTS in manifests/__init__.py
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict

import jsonschema

from audiosprite.core.models import BuildConfig, Timeline

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"

_SCHEMA_CACHE: Dict[str, Dict[str, Any]] = {}


def load_schema(schema_file: str) -> Dict[str, Any]:
    """Load a manifest JSON Schema, cached after the first read."""
    if schema_file not in _SCHEMA_CACHE:
        with open(SCHEMA_DIR / schema_file, encoding="utf-8") as f:
            _SCHEMA_CACHE[schema_file] = json.load(f)
    return _SCHEMA_CACHE[schema_file]


def to_ms(seconds: float) -> float:
    return seconds * 1000


class BaseManifest(ABC):
    """Abstract base for all manifest builders."""

    schema_file: str = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable schema name, e.g. 'howler.js v1'."""

    @abstractmethod
    def build(self, timeline: Timeline, config: BuildConfig) -> Dict[str, Any]:
        """Convert the finished timeline into this schema's JSON object.

        Args:
            timeline: Spritemap, resources, and autoplay of the build.
            config: The build configuration.

        Returns:
            A JSON-serializable dict.
        """

    def validate(self, manifest: Dict[str, Any]) -> None:
        """Raise jsonschema.ValidationError if ``manifest`` breaks the schema."""
        jsonschema.validate(instance=manifest, schema=load_schema(self.schema_file))

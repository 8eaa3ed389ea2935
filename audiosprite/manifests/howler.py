"""howler.js manifests (v1 ``urls`` and v2 ``src`` variants).

WHY: howler.js takes a sprite definition as ``{name: [offsetMs,
durationMs, loop?]}`` next to the list of audio URLs. Version 1 names the
URL list ``urls``; version 2 renamed it to ``src``.

HOW: One builder class parameterized by the resource key; HowlerManifest
and Howler2Manifest only differ in that key and their schema file.

RULES:
- Times are milliseconds: [start * 1000, (end - start) * 1000]
- The third element (true) is present only for looping clips
- Sprite keys keep the spritemap order
"""

from __future__ import annotations

from typing import Any, Dict, List

from audiosprite.core.models import BuildConfig, ClipEntry, Timeline
from audiosprite.manifests.base import BaseManifest, to_ms


def howler_sprite_entry(entry: ClipEntry) -> List[Any]:
    item: List[Any] = [to_ms(entry.start), to_ms(entry.end - entry.start)]
    if entry.loop:
        item.append(True)
    return item


class HowlerManifest(BaseManifest):
    schema_file = "howler.schema.json"
    resources_key = "urls"

    @property
    def name(self) -> str:
        return "howler.js v1"

    def build(self, timeline: Timeline, config: BuildConfig) -> Dict[str, Any]:
        return {
            self.resources_key: list(timeline.resources),
            "sprite": {
                name: howler_sprite_entry(entry)
                for name, entry in timeline.spritemap.items()
            },
        }


class Howler2Manifest(HowlerManifest):
    schema_file = "howler2.schema.json"
    resources_key = "src"

    @property
    def name(self) -> str:
        return "howler.js v2"

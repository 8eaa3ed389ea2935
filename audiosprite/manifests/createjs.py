"""CreateJS (SoundJS) audio sprite manifest.

WHY: SoundJS registers a sprite as one source file plus a list of
``{id, startTime, duration}`` records under ``data.audioSprite``.

RULES:
- src is the first resource, or None when nothing was exported
- startTime and duration are milliseconds; duration = end - start
- Records keep the spritemap order
"""

from __future__ import annotations

from typing import Any, Dict

from audiosprite.core.models import BuildConfig, Timeline
from audiosprite.manifests.base import BaseManifest, to_ms


class CreateJSManifest(BaseManifest):
    schema_file = "createjs.schema.json"

    @property
    def name(self) -> str:
        return "CreateJS SoundJS"

    def build(self, timeline: Timeline, config: BuildConfig) -> Dict[str, Any]:
        audio_sprite = [
            {
                "id": name,
                "startTime": to_ms(entry.start),
                "duration": to_ms(entry.end - entry.start),
            }
            for name, entry in timeline.spritemap.items()
        ]
        return {
            "src": timeline.resources[0] if timeline.resources else None,
            "data": {"audioSprite": audio_sprite},
        }

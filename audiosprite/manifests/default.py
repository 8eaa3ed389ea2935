"""Default (jukebox) manifest: the timeline as-is.

RULES:
- {resources, spritemap, autoplay?}
- spritemap entries keep start/end in seconds plus the loop flag
- autoplay is only present when the timeline has one
"""

from __future__ import annotations

from typing import Any, Dict

from audiosprite.core.models import BuildConfig, Timeline
from audiosprite.manifests.base import BaseManifest


class DefaultManifest(BaseManifest):
    schema_file = "default.schema.json"

    @property
    def name(self) -> str:
        return "Default (jukebox)"

    def build(self, timeline: Timeline, config: BuildConfig) -> Dict[str, Any]:
        manifest: Dict[str, Any] = {
            "resources": list(timeline.resources),
            "spritemap": {
                name: entry.to_dict() for name, entry in timeline.spritemap.items()
            },
        }
        if timeline.autoplay:
            manifest["autoplay"] = timeline.autoplay
        return manifest

"""audiosprite: pack audio clips into one sprite track plus a manifest.

WHY: Web and game audio players load one file faster than dozens, and
mobile browsers only allow a single active audio element. A sprite joins
every clip into one track and a manifest tells the player where each
named clip starts and ends.

HOW: Four-stage pipeline: decode (ffmpeg to raw PCM), assemble (timeline
fold with silence padding), export (ffmpeg encodes per container), and
describe (pluggable manifest builders). Each stage is independently
testable.

RULES:
- All manifest builders consume the same Timeline
- Adding a manifest schema = one enum member + one builder module
- The Timeline is the stable contract between assembly and manifests
"""

from audiosprite.core.models import BuildConfig, ClipEntry, ManifestFormat, Timeline
from audiosprite.core.pipeline import (
    BuildResult,
    SpriteBuilder,
    build_sprite,
    write_manifest,
)

__version__ = "0.1.0"

__all__ = [
    "BuildConfig",
    "BuildResult",
    "ClipEntry",
    "ManifestFormat",
    "SpriteBuilder",
    "Timeline",
    "build_sprite",
    "write_manifest",
]

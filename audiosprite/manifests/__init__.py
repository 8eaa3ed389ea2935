"""Manifest builder registry: one builder per ManifestFormat member.

WHY: The pipeline, CLI, and HTTP API need a single lookup from the
requested schema to the builder that produces it. Keying the registry by
the closed ManifestFormat enum, and checking it covers every member at
import time, means a new schema cannot be half-added.

HOW: MANIFESTS maps enum members to builder *classes*. build_manifest()
rewrites resource paths to the public prefix, runs the builder, and
validates the result against the schema before returning it.

RULES:
- Every ManifestFormat member has exactly one entry in MANIFESTS
- Values are BaseManifest subclasses (not instances)
- Resource rewriting joins the prefix with each resource's basename
"""

from __future__ import annotations

import os
import posixpath
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Dict

from audiosprite.core.models import BuildConfig, ManifestFormat, Timeline
from audiosprite.manifests.createjs import CreateJSManifest
from audiosprite.manifests.default import DefaultManifest
from audiosprite.manifests.howler import Howler2Manifest, HowlerManifest

if TYPE_CHECKING:
    from audiosprite.manifests.base import BaseManifest

MANIFESTS: Dict[ManifestFormat, type[BaseManifest]] = {
    ManifestFormat.DEFAULT: DefaultManifest,
    ManifestFormat.HOWLER: HowlerManifest,
    ManifestFormat.HOWLER2: Howler2Manifest,
    ManifestFormat.CREATEJS: CreateJSManifest,
}

_missing = set(ManifestFormat) - set(MANIFESTS)
if _missing:
    raise RuntimeError(
        "No manifest builder registered for: {}".format(
            ", ".join(sorted(m.value for m in _missing))
        )
    )


def with_public_paths(timeline: Timeline, prefix: str) -> Timeline:
    """Point every resource at ``prefix/<basename>``; no-op for an empty prefix."""
    if not prefix:
        return timeline
    resources = tuple(
        posixpath.join(prefix, os.path.basename(resource))
        for resource in timeline.resources
    )
    return replace(timeline, resources=resources)


def build_manifest(timeline: Timeline, config: BuildConfig) -> Dict[str, Any]:
    """Build and validate the manifest selected by ``config.format``."""
    builder = MANIFESTS[config.format]()
    manifest = builder.build(with_public_paths(timeline, config.path), config)
    builder.validate(manifest)
    return manifest


__all__ = ["MANIFESTS", "build_manifest", "with_public_paths"]

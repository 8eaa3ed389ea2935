"""Sprite build orchestration: decode, assemble, export, describe.

WHY: A sprite build touches many temp files and several external
processes, and any one of them can fail halfway. The orchestrator is the
single place that sequences the phases, owns every temp file, and turns
any failure into one terminal error with nothing left behind in the temp
directory.

HOW: SpriteBuilder.build() runs the phases in order:
  1. validate inputs (de-duplicate paths, reject clashing clip names)
  2. check the transcoder is callable
  3. seed the Track File with the leading silence clip, if configured
  4. for each clip in input order: decode to a temp file, append it to
     the Track File, fold it into the Timeline, append its trailing
     silence, export its raw parts, delete its temp file
  5. encode the Track File into every export format, delete it
  6. build and validate the manifest
Temp files are tracked from creation; a finally block removes whatever
is left, logging (never raising) removal failures. When the build fails,
the same block also removes every export and raw part it started.

RULES:
- Clip i+1 is not decoded before clip i, its silence, and its raw parts
  are fully on disk
- Only one Track File exists per build; it is only read once step 5 starts
- Any error except a failed caf conversion aborts the build
- No manifest is returned (and so none is written) for a failed build
- A failed build leaves none of its exports or raw parts in the output
  directory
- Clip name = basename with the last extension stripped
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from audiosprite.core.exporter import Exporter
from audiosprite.core.models import SILENCE_CLIP_NAME, BuildConfig, Timeline
from audiosprite.core.silence import append_silence
from audiosprite.core.timeline import (
    add_resource,
    advance,
    append_clip,
    byte_duration,
    seed_silence,
)
from audiosprite.manifests import build_manifest
from audiosprite.transcoder.runner import AudioSpriteError, Transcoder

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

_EXTENSION_RE = re.compile(r"\.[a-zA-Z0-9]+$")


class NoInputFilesError(AudioSpriteError):
    """Raised when a build is started without any input clips."""


class DuplicateClipNameError(AudioSpriteError):
    """Raised when two different inputs would produce the same clip name.

    WHY: Clip names key the spritemap. Letting a later file silently
    replace an earlier entry would leave the earlier audio in the track
    with no way to address it.

    RULES:
    - name is the clashing clip name
    - paths lists every input that maps to it
    """

    def __init__(self, name: str, paths: Sequence[Path]) -> None:
        self.name = name
        self.paths = list(paths)
        super().__init__(
            "Clip name '{}' is produced by more than one input: {}".format(
                name, ", ".join(str(p) for p in paths)
            )
        )


def clip_name(path: PathLike) -> str:
    """Return the spritemap key for an input file (basename, last extension stripped)."""
    return _EXTENSION_RE.sub("", os.path.basename(os.fspath(path)))


def prepare_inputs(files: Iterable[PathLike], config: BuildConfig) -> List[Path]:
    """De-duplicate input paths and check that clip names are unique.

    RULES:
    - The same path given twice is processed once (first position wins)
    - Different paths with the same clip name raise DuplicateClipNameError
    - A clip named "silence" clashes with the leading silence clip when
      one is configured
    - An empty input list raises NoInputFilesError
    """
    unique: List[Path] = []
    seen: set = set()
    for item in files:
        key = os.fspath(item)
        if key not in seen:
            seen.add(key)
            unique.append(Path(key))

    if not unique:
        raise NoInputFilesError("No input files specified")

    by_name: Dict[str, List[Path]] = {}
    for path in unique:
        by_name.setdefault(clip_name(path), []).append(path)
    for name, paths in by_name.items():
        if len(paths) > 1:
            raise DuplicateClipNameError(name, paths)
        if config.silence and name == SILENCE_CLIP_NAME:
            raise DuplicateClipNameError(name, paths)

    return unique


def _append_file(src: Path, dest: Path) -> int:
    with open(src, "rb") as reader, open(dest, "ab") as writer:
        shutil.copyfileobj(reader, writer)
        writer.flush()
        os.fsync(writer.fileno())
    return src.stat().st_size


@dataclass
class BuildResult:
    """Outcome of a successful build.

    RULES:
    - manifest: the validated manifest dict for config.format
    - timeline: the final Timeline (resources not rewritten to the public path)
    - outputs: every file kept on disk, raw parts first, then final exports
    """

    manifest: Dict[str, Any]
    timeline: Timeline
    outputs: List[Path] = field(default_factory=list)


class SpriteBuilder:
    """Runs one sprite build and owns its temp files.

    WHY: Temp file lifetime is tied to the phases: a clip's decoded PCM
    lives until its raw parts are exported, the Track File until the
    final exports finish. Keeping both under one owner makes cleanup on
    failure a single finally block.

    HOW: Instantiate with a BuildConfig (and optionally a Transcoder and a
    logger), then await build(files). A builder is meant for one build.
    """

    def __init__(
        self,
        config: BuildConfig,
        transcoder: Optional[Transcoder] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config
        self._log = log or logger
        self._transcoder = transcoder or Transcoder(config, log=self._log)
        self._exporter = Exporter(self._transcoder, config, log=self._log)
        self._temp_files: List[Path] = []

    # ------------------------------------------------------------------
    # Temp file lifecycle
    # ------------------------------------------------------------------

    def _new_temp(self) -> Path:
        path = self._transcoder.make_temp()
        self._temp_files.append(path)
        return path

    def _discard(self, path: Path) -> None:
        if path in self._temp_files:
            self._temp_files.remove(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            self._log.warning("Could not remove temp file %s: %s", path, exc)

    def _cleanup(self) -> None:
        for path in list(self._temp_files):
            self._discard(path)

    def _remove_outputs(self) -> None:
        for path in self._exporter.started:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                self._log.warning("Could not remove output file %s: %s", path, exc)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _seed(self, timeline: Timeline, track: Path) -> Timeline:
        timeline, lead = seed_silence(timeline, self._config)
        if lead:
            await append_silence(lead, track, self._config)
            timeline = advance(timeline, lead)
        return timeline

    async def _process_clip(
        self,
        timeline: Timeline,
        source: Path,
        index: int,
        track: Path,
        outputs: List[Path],
    ) -> Timeline:
        raw = self._new_temp()
        await self._transcoder.decode(source, raw)

        name = clip_name(source)
        byte_length = await asyncio.to_thread(_append_file, raw, track)
        self._log.info(
            "File added OK (file=%s, duration=%.3fs)",
            source, byte_duration(byte_length, self._config),
        )

        folded = append_clip(timeline, name, byte_length, self._config)
        await append_silence(folded.silence, track, self._config)
        timeline = advance(folded.timeline, folded.silence)

        for result in await self._exporter.export_raw_parts(raw, index, name):
            if result.path is not None:
                outputs.append(result.path)

        self._discard(raw)
        return timeline

    async def build(self, files: Iterable[PathLike]) -> BuildResult:
        """Build the sprite for ``files`` and return its manifest.

        Args:
            files: Input clip paths, processed in the given order.

        Returns:
            BuildResult with the manifest, final timeline, and output files.

        Raises:
            AudioSpriteError: any fatal failure (missing source, transcoder
                unavailable, decode/encode failure, clashing clip names).
        """
        inputs = prepare_inputs(files, self._config)

        output_dir = Path(self._config.output).parent
        output_dir.mkdir(parents=True, exist_ok=True)

        version = await self._transcoder.check_available()
        self._log.debug("Using transcoder: %s", version)

        outputs: List[Path] = []
        completed = False
        try:
            track = self._new_temp()
            timeline = await self._seed(Timeline(autoplay=self._config.autoplay), track)

            for index, source in enumerate(inputs, start=1):
                timeline = await self._process_clip(timeline, source, index, track, outputs)

            for result in await self._exporter.export_final(track, self._config.export):
                if result.path is None:
                    continue
                outputs.append(result.path)
                if result.store:
                    timeline = add_resource(timeline, str(result.path))

            self._discard(track)
            manifest = build_manifest(timeline, self._config)
            completed = True
        finally:
            self._cleanup()
            if not completed:
                self._remove_outputs()

        return BuildResult(manifest=manifest, timeline=timeline, outputs=outputs)


async def build_sprite(
    files: Iterable[PathLike],
    config: Optional[BuildConfig] = None,
    *,
    log: Optional[logging.Logger] = None,
    transcoder: Optional[Transcoder] = None,
    **options: Any,
) -> BuildResult:
    """Convenience wrapper: build a sprite from a config or keyword options.

    Keyword options are BuildConfig fields and are only used when no
    config is passed.
    """
    if config is None:
        config = BuildConfig(**options)
    builder = SpriteBuilder(config, transcoder=transcoder, log=log)
    return await builder.build(files)


def manifest_path(output: PathLike) -> Path:
    return Path("{}.json".format(os.fspath(output)))


def write_manifest(manifest: Dict[str, Any], output: PathLike) -> Path:
    """Write ``manifest`` to ``<output>.json`` as indented UTF-8 JSON."""
    path = manifest_path(output)
    path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    return path

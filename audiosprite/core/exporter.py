"""Export stage: encode the finished track and per-clip raw slices.

WHY: A sprite is published in several containers because browsers and
game engines disagree on which codecs they play. Web Audio users may also
want each clip as its own small file ("raw parts"). Both are produced by
running the transcoder over raw PCM that already exists on disk.

HOW: Exporter.export() encodes one source into ``<dest_base>.<ext>``.
export_final() fans that out over every requested format against the
Track File, bounded by an asyncio.Semaphore. export_raw_parts() runs the
raw-part formats one after another against a single clip's temp file,
writing ``<output>_<NNN>.<ext>``.

RULES:
- Final exports are registered in the manifest resources; raw parts never are
- Final export results come back in requested format order, whatever the
  completion order
- If one final export fails, the others are cancelled and the error is raised
- aiff is converted to caf afterwards; the .aiff is always deleted and the
  .caf kept only if it was produced
- A failed caf conversion is logged and treated as "no output"
- Raw part index is 1-based and zero-padded to width 3
- Every output path is added to Exporter.started before its encode begins,
  so a failed build can remove partial files
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from audiosprite.config import SECONDARY_CONVERT_EXTENSION, SECONDARY_CONVERT_FORMAT
from audiosprite.core.models import BuildConfig
from audiosprite.transcoder.formats import export_arguments
from audiosprite.transcoder.runner import SecondaryConvertError, Transcoder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportResult:
    """One finished export.

    RULES:
    - path is None when nothing was kept (caf conversion unavailable/failed)
    - store is True for outputs that belong in the manifest resources
    """

    format: str
    path: Optional[Path]
    store: bool


def raw_part_base(output: str, index: int) -> str:
    """Base path (without extension) of the raw slices for clip ``index``."""
    return "{}_{:03d}".format(output, index)


class Exporter:
    """Runs transcoder encodes for one build."""

    def __init__(
        self,
        transcoder: Transcoder,
        config: BuildConfig,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._transcoder = transcoder
        self._config = config
        self._log = log or logger
        self._arguments = export_arguments(config)
        self.started: List[Path] = []

    async def export(
        self,
        src: Path,
        dest_base: str,
        ext: str,
        args: Sequence[str],
        store: bool,
    ) -> ExportResult:
        """Encode ``src`` into ``<dest_base>.<ext>``.

        Args:
            src: Raw PCM file (Track File or a clip's temp file).
            dest_base: Output path without extension.
            ext: Output extension, selects the container.
            args: Encoder arguments from the format table.
            store: Whether the result belongs in the manifest resources.

        Returns:
            ExportResult describing the kept file.
        """
        outfile = Path("{}.{}".format(dest_base, ext))
        self.started.append(outfile)
        await self._transcoder.encode(src, outfile, args, ext)

        if ext != SECONDARY_CONVERT_FORMAT:
            self._log.info("Exported %s OK (file=%s)", ext, outfile)
            return ExportResult(format=ext, path=outfile, store=store)

        caf = Path("{}.{}".format(dest_base, SECONDARY_CONVERT_EXTENSION))
        kept: Optional[Path] = None
        self.started.append(caf)
        try:
            if await self._transcoder.convert_caf(outfile, caf):
                kept = caf
                self._log.info("Exported caf OK (file=%s)", caf)
        except SecondaryConvertError as exc:
            self._log.warning("caf conversion failed, skipping output: %s", exc)
        finally:
            outfile.unlink(missing_ok=True)

        return ExportResult(format=SECONDARY_CONVERT_EXTENSION, path=kept, store=store)

    async def export_final(self, track: Path, formats: Sequence[str]) -> List[ExportResult]:
        """Encode the assembled track into every requested format.

        The track is only read here, so the encodes are independent and
        run concurrently up to config.max_parallel_exports at a time.
        """
        semaphore = asyncio.Semaphore(self._config.max_parallel_exports)

        async def _one(ext: str) -> ExportResult:
            async with semaphore:
                self._log.debug("Start export (format=%s)", ext)
                return await self.export(track, self._config.output, ext, self._arguments[ext], True)

        tasks = [asyncio.ensure_future(_one(ext)) for ext in formats]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def export_raw_parts(self, raw_file: Path, index: int, name: str) -> List[ExportResult]:
        """Encode one clip's decoded PCM into each raw-part format, in order."""
        base = raw_part_base(self._config.output, index)
        results: List[ExportResult] = []
        for ext in self._config.rawparts:
            self._log.debug("Start export slice (name=%s, format=%s, index=%d)", name, ext, index)
            results.append(await self.export(raw_file, base, ext, self._arguments[ext], False))
        return results

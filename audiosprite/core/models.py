"""Timeline dataclasses and the immutable build configuration.

WHY: Every stage of a sprite build (assembly, export, manifest building)
needs the same picture of where each clip sits on the concatenated track
and which options the build was started with. A single set of well-typed
structures decouples the assembler from the exporters and the manifest
builders, the same way a shared IR decouples parsing from formatting.

HOW: Three structures:
  ClipEntry   : one named segment of the track (start/end seconds, loop)
  Timeline    : the fold accumulator: cursor, spritemap, resources, autoplay
  BuildConfig : a frozen pydantic model with every recognized option
ManifestFormat is the closed set of manifest schemas a build can emit.

RULES:
- All times are float seconds
- ClipEntry.end > ClipEntry.start always
- Timeline is frozen; updates go through dataclasses.replace with copied
  containers, never in-place mutation
- BuildConfig is validated once, before the build starts, and never changes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from audiosprite.config import (
    BYTES_PER_SAMPLE,
    DEFAULT_BITRATE_KBPS,
    DEFAULT_CHANNELS,
    DEFAULT_EXPORT_FORMATS,
    DEFAULT_GAP_S,
    DEFAULT_SAMPLE_RATE,
    MAX_PARALLEL_EXPORTS,
    SUPPORTED_EXPORT_FORMATS,
    TEMP_DIR,
    parse_format_list,
)

SILENCE_CLIP_NAME = "silence"
"""Name of the synthetic leading silence clip."""


class ManifestFormat(str, Enum):
    """Manifest schemas a build can emit.

    WHY: Playback libraries expect different JSON shapes for the same
    sprite. A closed enum keeps the set explicit; the manifest registry is
    checked against it so no member can be left without a builder.

    RULES:
    - Values are the names accepted by the CLI and HTTP API
    - "jukebox" is accepted as an alias of DEFAULT (see parse())
    """

    DEFAULT = "default"
    HOWLER = "howler"
    HOWLER2 = "howler2"
    CREATEJS = "createjs"

    @classmethod
    def parse(cls, value: Any) -> ManifestFormat:
        if value is None or value == "" or value == "jukebox":
            return cls.DEFAULT
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())


@dataclass(frozen=True)
class ClipEntry:
    """A named segment of the sprite track.

    RULES:
    - start: offset of the clip's first sample, seconds, >= 0
    - end: start + decoded duration + minimum-length padding
    - loop: True for the autoplay clip, configured loop clips, and the
      leading silence clip
    """

    start: float
    end: float
    loop: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end, "loop": self.loop}


@dataclass(frozen=True)
class Timeline:
    """Process-scoped accumulator for one sprite build.

    WHY: Clip offsets are derived from everything appended before them, so
    the build threads one accumulator through a sequential fold. Making it
    frozen means each fold step returns a new value and no step can see a
    half-applied update.

    RULES:
    - offset_cursor never decreases
    - spritemap preserves insertion order (= processing order)
    - resources is append-only, in requested export order
    - autoplay is the clip that loops on playback start, or None
    """

    offset_cursor: float = 0.0
    spritemap: Dict[str, ClipEntry] = field(default_factory=dict)
    resources: Tuple[str, ...] = ()
    autoplay: Optional[str] = None


class BuildConfig(BaseModel):
    """Every option recognized by a sprite build.

    WHY: The assembler, exporter, and manifest builders all read the same
    settings. Validating them once up front turns a typo in a format list
    into an immediate error instead of a failure halfway through encoding.

    RULES:
    - Frozen: the model cannot be changed after construction
    - export/rawparts accept a list or a comma-separated string
    - Unknown export extensions are rejected
    - vbr is the mp3 quality (0-9), vbr_vorbis the webm qscale (0-10);
      values outside those ranges fall back to bitrate
    - rounding_bypass_drops_minlength keeps the historical coupling where
      ignorerounding also suppresses minimum-length padding
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    output: str = Field(default="output", description="Base path for output files.")
    path: str = Field(default="", description="Public path prefix for manifest resources.")
    export: Tuple[str, ...] = Field(
        default=DEFAULT_EXPORT_FORMATS,
        description="Export formats for the final sprite, in registration order.",
    )
    format: ManifestFormat = Field(default=ManifestFormat.DEFAULT, description="Manifest schema.")
    autoplay: Optional[str] = Field(default=None, description="Clip that loops on start.")
    loop: Tuple[str, ...] = Field(default=(), description="Clip names flagged as looping.")
    silence: float = Field(default=0.0, ge=0, description="Leading silence clip duration (s).")
    gap: float = Field(default=DEFAULT_GAP_S, ge=0, description="Silence between clips (s).")
    minlength: float = Field(default=0.0, ge=0, description="Minimum clip duration (s).")
    bitrate: int = Field(default=DEFAULT_BITRATE_KBPS, gt=0, description="Bitrate in kbit/s.")
    vbr: int = Field(default=-1, description="mp3 VBR quality 0-9, -1 disables.")
    vbr_vorbis: int = Field(
        default=-1,
        alias="vbr:vorbis",
        description="webm vorbis qscale 0-10, -1 disables.",
    )
    samplerate: int = Field(default=DEFAULT_SAMPLE_RATE, gt=0, description="Sample rate (Hz).")
    channels: int = Field(default=DEFAULT_CHANNELS, ge=1, le=2, description="1=mono, 2=stereo.")
    rawparts: Tuple[str, ...] = Field(default=(), description="Formats for per-clip raw slices.")
    ignorerounding: bool = Field(default=False, description="Skip whole-second rounding.")
    rounding_bypass_drops_minlength: bool = Field(
        default=True,
        description="When ignorerounding is set, also skip minlength padding.",
    )
    max_parallel_exports: int = Field(
        default=MAX_PARALLEL_EXPORTS,
        ge=1,
        description="Upper bound on concurrent final-format encodes.",
    )
    temp_dir: Optional[str] = Field(default=TEMP_DIR, description="Directory for temp files.")

    @field_validator("export", "rawparts", mode="before")
    @classmethod
    def _split_formats(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(parse_format_list(value))
        return tuple(parse_format_list(",".join(str(v) for v in value)))

    @field_validator("export", "rawparts")
    @classmethod
    def _check_formats(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        unknown = [ext for ext in value if ext not in SUPPORTED_EXPORT_FORMATS]
        if unknown:
            raise ValueError(
                "Unknown export format(s) {}. Supported: {}".format(
                    ", ".join(unknown), ", ".join(SUPPORTED_EXPORT_FORMATS)
                )
            )
        return value

    @field_validator("format", mode="before")
    @classmethod
    def _parse_format(cls, value: Any) -> ManifestFormat:
        return ManifestFormat.parse(value)

    @field_validator("loop", mode="before")
    @classmethod
    def _coerce_loop(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return tuple(value)

    @field_validator("autoplay", mode="before")
    @classmethod
    def _blank_autoplay(cls, value: Any) -> Any:
        return value or None

    @property
    def bytes_per_second(self) -> int:
        """Raw PCM byte rate of the track and temp files."""
        return self.samplerate * self.channels * BYTES_PER_SAMPLE

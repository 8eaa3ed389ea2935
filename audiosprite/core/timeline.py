"""Timeline assembly: clip offsets, padding, and gap rounding.

WHY: The sprite is one long track, so every clip's start time depends on
everything appended before it. Playback libraries also expect each clip
to begin on a whole-second boundary with a configurable gap of silence in
between, and short clips to be padded to a minimum length. This module
holds all of that arithmetic as a pure fold so it can be tested without
ever touching a file or a transcoder.

HOW: append_clip() takes the current Timeline, the clip's name, and the
byte length of its decoded PCM, and returns a ClipAppend: the new
Timeline, the recorded ClipEntry, and the seconds of trailing silence the
orchestrator must write. Once that silence is on disk, advance() moves
the cursor by the same amount. seed_silence() handles the optional
leading "silence" clip before any real clip is processed.

RULES:
- original = byte_length / (samplerate * channels * 2)
- extra = max(0, minlength - original); duration = original + extra
- entry = {start: cursor, end: cursor + duration, loop: autoplay or in loop set}
- cursor advances by original (not duration); padding lives in the silence
- delta = ceil(duration) - duration, or 0 when ignorerounding is set
- ignorerounding also zeroes extra while rounding_bypass_drops_minlength holds
- trailing silence = extra + delta + gap
- A later clip with an existing name replaces the spritemap entry; the
  orchestrator rejects such inputs before the fold starts
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import NamedTuple, Tuple

from audiosprite.core.models import SILENCE_CLIP_NAME, BuildConfig, ClipEntry, Timeline


class ClipAppend(NamedTuple):
    """Result of folding one decoded clip into the timeline."""

    timeline: Timeline
    entry: ClipEntry
    silence: float


@dataclass(frozen=True)
class ClipTiming:
    """Duration breakdown for one clip, before it is placed on the timeline.

    RULES:
    - original: decoded audio length
    - extra: minimum-length padding that is written as silence
    - delta: rounding slack up to the next whole second
    - recorded: length stored in the spritemap (original + minlength padding)
    """

    original: float
    extra: float
    delta: float
    recorded: float

    def trailing_silence(self, gap: float) -> float:
        return self.extra + self.delta + gap


def byte_duration(byte_length: int, config: BuildConfig) -> float:
    """Convert a raw PCM byte count into seconds."""
    return byte_length / config.bytes_per_second


def compute_timing(byte_length: int, config: BuildConfig) -> ClipTiming:
    """Work out padding and rounding for a clip of ``byte_length`` bytes.

    The spritemap end always includes the minimum-length padding, even when
    rounding is bypassed and that padding is not written to the track.
    """
    original = byte_duration(byte_length, config)
    extra = max(0.0, config.minlength - original)
    recorded = original + extra
    delta = math.ceil(recorded) - recorded

    if config.ignorerounding:
        delta = 0.0
        if config.rounding_bypass_drops_minlength:
            extra = 0.0

    return ClipTiming(original=original, extra=extra, delta=delta, recorded=recorded)


def is_looping(name: str, config: BuildConfig) -> bool:
    return name == config.autoplay or name in config.loop


def append_clip(
    timeline: Timeline,
    name: str,
    byte_length: int,
    config: BuildConfig,
) -> ClipAppend:
    """Fold one decoded clip into the timeline.

    WHY: Offsets must be derived from exact byte counts so the manifest
    points at the real sample positions in the concatenated track.

    HOW: Computes the clip timing, records a ClipEntry at the current
    cursor, advances the cursor by the clip's original duration, and
    reports how much silence must follow it.

    RULES:
    - Does not touch the filesystem
    - The returned Timeline shares nothing mutable with the input one
    - The silence reported must be written, then passed to advance()

    Args:
        timeline: Accumulator after the previous clip.
        name: Clip name (source basename without extension).
        byte_length: Size of the clip's decoded raw PCM in bytes.
        config: The build configuration.

    Returns:
        ClipAppend with the new Timeline, the entry, and trailing silence.
    """
    if byte_length <= 0:
        raise ValueError("Clip '{}' decoded to no audio".format(name))

    timing = compute_timing(byte_length, config)
    start = timeline.offset_cursor
    entry = ClipEntry(
        start=start,
        end=start + timing.recorded,
        loop=is_looping(name, config),
    )

    spritemap = dict(timeline.spritemap)
    spritemap[name] = entry

    updated = replace(
        timeline,
        offset_cursor=start + timing.original,
        spritemap=spritemap,
    )
    return ClipAppend(updated, entry, timing.trailing_silence(config.gap))


def advance(timeline: Timeline, seconds: float) -> Timeline:
    """Move the cursor past ``seconds`` of silence that was just written."""
    if seconds < 0:
        raise ValueError("Cannot move the timeline cursor backwards")
    return replace(timeline, offset_cursor=timeline.offset_cursor + seconds)


def seed_silence(timeline: Timeline, config: BuildConfig) -> Tuple[Timeline, float]:
    """Register the leading silence clip, if one is configured.

    RULES:
    - No-op (returns 0.0 seconds) when config.silence is 0
    - The clip is named "silence", spans [0, silence], and always loops
    - silence + gap seconds must then be written to the fresh track
    - Without a configured autoplay clip, "silence" becomes the autoplay
    """
    if not config.silence:
        return timeline, 0.0

    spritemap = dict(timeline.spritemap)
    spritemap[SILENCE_CLIP_NAME] = ClipEntry(start=0.0, end=config.silence, loop=True)
    autoplay = timeline.autoplay if config.autoplay else SILENCE_CLIP_NAME
    seeded = replace(timeline, spritemap=spritemap, autoplay=autoplay)
    return seeded, config.silence + config.gap


def add_resource(timeline: Timeline, path: str) -> Timeline:
    return replace(timeline, resources=timeline.resources + (path,))

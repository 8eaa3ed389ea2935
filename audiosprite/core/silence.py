"""Zero-filled PCM padding appended to the sprite track.

WHY: Gaps between clips, rounding slack, minimum-length padding, and the
optional leading silence clip are all plain digital silence in the raw
track. Writing them directly as zero bytes is exact and avoids a
transcoder round trip.

HOW: silence_byte_count() sizes the buffer; append_silence() writes it in
append mode, flushes, and fsyncs inside a worker thread so the event loop
stays free. The coroutine only returns once the data is durable, which is
what lets the next append start safely.

RULES:
- Byte count = round(samplerate * duration) whole frames of channels * 2 bytes,
  so the track stays frame aligned
- Always appends, never truncates
- Returns the number of bytes written (0 for a zero duration)
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from audiosprite.config import BYTES_PER_SAMPLE
from audiosprite.core.models import BuildConfig

logger = logging.getLogger(__name__)

_CHUNK_BYTES = 1 << 20


def silence_byte_count(duration: float, config: BuildConfig) -> int:
    frames = int(round(config.samplerate * duration))
    return frames * config.channels * BYTES_PER_SAMPLE


def _write_zeros(target: Path, count: int) -> None:
    with open(target, "ab") as f:
        remaining = count
        chunk = bytes(min(count, _CHUNK_BYTES))
        while remaining > 0:
            n = min(remaining, len(chunk))
            f.write(chunk[:n])
            remaining -= n
        f.flush()
        os.fsync(f.fileno())


async def append_silence(duration: float, target: Path, config: BuildConfig) -> int:
    """Append ``duration`` seconds of silence to ``target``.

    Args:
        duration: Seconds of silence, >= 0.
        target: The raw PCM file to extend.
        config: Supplies sample rate and channel count.

    Returns:
        Number of zero bytes written.
    """
    if duration < 0:
        raise ValueError("Silence duration must be >= 0, got {}".format(duration))

    count = silence_byte_count(duration, config)
    await asyncio.to_thread(_write_zeros, Path(target), count)
    logger.info("Silence gap added (duration=%.3fs, bytes=%d)", duration, count)
    return count

"""Configuration constants, export format names, and .env loading.

WHY: Centralizes the values that shape every sprite build (raw PCM
format, default export list, transcoder binaries, temp locations) so they
are easy to find, update, and override. The format lists are plain data,
not buried in the exporter, so adding a container is a one-line change
here plus one entry in the argument table.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level tuples, sets, and strings. Environment variables override
the binary paths, temp directory, export parallelism, and log level.

RULES:
- The raw interchange format is always signed 16-bit little-endian PCM
- DEFAULT_EXPORT_FORMATS keeps the historical order ogg, m4a, mp3, ac3
- SUPPORTED_EXPORT_FORMATS must match the keys of the argument table in
  transcoder/formats.py
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Raw PCM interchange format
# ---------------------------------------------------------------------------

RAW_FORMAT_TAG = "s16le"
"""ffmpeg ``-f`` tag for the raw track and per-clip temp files."""

BYTES_PER_SAMPLE = 2

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_CHANNELS = 1

# ---------------------------------------------------------------------------
# Export formats
# ---------------------------------------------------------------------------

SUPPORTED_EXPORT_FORMATS: tuple[str, ...] = (
    "aiff", "wav", "ac3", "mp3", "mp4", "m4a", "ogg", "opus", "webm",
)
"""Container extensions the exporter knows how to produce."""

DEFAULT_EXPORT_FORMATS: tuple[str, ...] = ("ogg", "m4a", "mp3", "ac3")

SECONDARY_CONVERT_FORMAT = "aiff"
"""Primary export that is converted to .caf and then discarded."""

SECONDARY_CONVERT_EXTENSION = "caf"

DEFAULT_BITRATE_KBPS = 128
DEFAULT_GAP_S = 1.0

# ---------------------------------------------------------------------------
# Runtime defaults (environment overridable)
# ---------------------------------------------------------------------------

FFMPEG_BINARY = os.getenv("AUDIOSPRITE_FFMPEG", "ffmpeg")
AFCONVERT_BINARY = os.getenv("AUDIOSPRITE_AFCONVERT", "afconvert")
TEMP_DIR = os.getenv("AUDIOSPRITE_TEMP_DIR") or None
MAX_PARALLEL_EXPORTS = int(os.getenv("AUDIOSPRITE_MAX_PARALLEL_EXPORTS", "1"))
DEFAULT_LOG_LEVEL = os.getenv("AUDIOSPRITE_LOG_LEVEL", "info")

TEMP_FILE_PREFIX = "audiosprite"

# Syslog-style level names accepted by the CLI, mapped to logging levels.
LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO + 5,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_format_list(value: str | None) -> list[str]:
    """Split a comma-separated extension list, dropping blanks and duplicates.

    RULES:
    - Order is preserved (first occurrence wins)
    - Leading dots and surrounding whitespace are stripped, case is lowered
    - None or "" returns an empty list
    """
    if not value:
        return []
    seen: set[str] = set()
    result: list[str] = []
    for item in value.split(","):
        ext = item.strip().lstrip(".").lower()
        if ext and ext not in seen:
            seen.add(ext)
            result.append(ext)
    return result

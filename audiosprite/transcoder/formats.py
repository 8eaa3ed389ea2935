"""Per-format encoder arguments for the export stage.

WHY: Each output container needs its own codec flags, and the lossy ones
take either a bitrate or a quality setting. Keeping the table in one
place means adding a container is one dict entry, not a change to the
exporter.

HOW: export_arguments() builds the full table from a BuildConfig, then
selects the mp3 and webm quality flag: the explicit quality wins when it
is in its valid range, otherwise the bitrate is used.

RULES:
- Keys must match config.SUPPORTED_EXPORT_FORMATS
- mp3: -aq <vbr> when 0 <= vbr <= 9, else -ab <bitrate>k
- webm: -qscale:a <q> when 0 <= q <= 10, else -ab <bitrate>k
- aiff and wav take no extra arguments (ffmpeg infers from the extension)
- All values are strings, ready for create_subprocess_exec
"""

from __future__ import annotations

from typing import Dict, List

from audiosprite.core.models import BuildConfig

_MP3_VBR_RANGE = range(0, 10)
_VORBIS_QSCALE_RANGE = range(0, 11)


def export_arguments(config: BuildConfig) -> Dict[str, List[str]]:
    """Return the encoder argument list for every supported format."""
    bitrate = "{}k".format(config.bitrate)

    formats: Dict[str, List[str]] = {
        "aiff": [],
        "wav": [],
        "ac3": ["-acodec", "ac3", "-ab", bitrate],
        "mp3": ["-ar", str(config.samplerate), "-f", "mp3"],
        "mp4": ["-ab", bitrate],
        "m4a": ["-ab", bitrate, "-strict", "-2"],
        "ogg": ["-acodec", "libvorbis", "-f", "ogg", "-ab", bitrate],
        "opus": ["-acodec", "libopus", "-ab", bitrate],
        "webm": ["-acodec", "libvorbis", "-f", "webm", "-dash", "1"],
    }

    if config.vbr in _MP3_VBR_RANGE:
        formats["mp3"] += ["-aq", str(config.vbr)]
    else:
        formats["mp3"] += ["-ab", bitrate]

    # https://trac.ffmpeg.org/wiki/TheoraVorbisEncodingGuide
    if config.vbr_vorbis in _VORBIS_QSCALE_RANGE:
        formats["webm"] += ["-qscale:a", str(config.vbr_vorbis)]
    else:
        formats["webm"] += ["-ab", bitrate]

    return formats


def arguments_for(ext: str, config: BuildConfig) -> List[str]:
    """Encoder arguments for one extension; KeyError for unknown formats."""
    return export_arguments(config)[ext]

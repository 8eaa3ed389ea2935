"""Transcoder package: async interface to ffmpeg and afconvert.

WHY: Decoding input clips and encoding the finished sprite are delegated
to external command-line tools. This package keeps process handling and
the per-format argument table behind a small typed API.

HOW: runner.py holds the Transcoder class and the error hierarchy;
formats.py holds the encoder argument table.

RULES:
- All ffmpeg calls go through Transcoder (no direct subprocess use elsewhere)
- Errors raised here are AudioSpriteError subclasses
"""

from audiosprite.transcoder.formats import arguments_for, export_arguments
from audiosprite.transcoder.runner import (
    AudioSpriteError,
    DecodeError,
    EncodeError,
    SecondaryConvertError,
    SourceNotFoundError,
    TranscodeError,
    Transcoder,
    TranscoderUnavailableError,
)

__all__ = [
    "AudioSpriteError",
    "DecodeError",
    "EncodeError",
    "SecondaryConvertError",
    "SourceNotFoundError",
    "TranscodeError",
    "Transcoder",
    "TranscoderUnavailableError",
    "arguments_for",
    "export_arguments",
]

"""Shared fixtures for the audiosprite test suite.

WHY: The pipeline spawns ffmpeg for every decode and encode. Tests must
run on machines without ffmpeg and must be able to make a single step
fail on demand, so the transcoder is replaced by a tiny Python script
that honors the same command-line contract.

HOW: The stand-in treats every input as raw PCM already. Decoding copies
the source to stdout, encoding copies the source to the destination. A
source whose name contains "corrupt" fails to decode; an output whose
extension equals $FAKE_FFMPEG_FAIL fails to encode.

RULES:
- Clip files are raw s16le at 8000 Hz mono (16000 bytes per second), so
  durations map to exact byte counts
- Every build writes its temp files into tmp_path/"tmp" so tests can
  check nothing is left behind
"""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from typing import Callable, List

import pytest

from audiosprite.core.models import BuildConfig
from audiosprite.transcoder.runner import Transcoder

SAMPLE_RATE = 8000
BYTES_PER_SECOND = SAMPLE_RATE * 2

FAKE_FFMPEG = '''\
import os
import sys

args = sys.argv[1:]
if args == ["-version"]:
    print("ffmpeg version 0.0-fake Copyright (c) the test suite")
    sys.exit(0)
if "-i" not in args:
    sys.stderr.write("no input given\\n")
    sys.exit(2)

src = args[args.index("-i") + 1]
dest = args[-1]

if "corrupt" in os.path.basename(src):
    sys.stderr.write("{}: Invalid data found when processing input\\n".format(src))
    sys.exit(1)

fail_ext = os.environ.get("FAKE_FFMPEG_FAIL", "")
if fail_ext and dest.endswith("." + fail_ext):
    sys.stderr.write("Unknown encoder for {}\\n".format(fail_ext))
    sys.exit(1)

with open(src, "rb") as f:
    data = f.read()

if dest == "pipe:":
    sys.stdout.buffer.write(data)
    sys.stdout.flush()
else:
    with open(dest, "wb") as f:
        f.write(data)
'''


@pytest.fixture
def fake_ffmpeg_script(tmp_path) -> Path:
    """Executable stand-in for ffmpeg (also runnable as a plain script)."""
    script = tmp_path / "fake_ffmpeg.py"
    script.write_text("#!{}\n{}".format(sys.executable, FAKE_FFMPEG), encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def fake_ffmpeg(fake_ffmpeg_script) -> List[str]:
    """Command prefix running the stand-in through the current interpreter."""
    return [sys.executable, str(fake_ffmpeg_script)]


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    path = tmp_path / "tmp"
    path.mkdir()
    return path


@pytest.fixture
def make_config(tmp_path, temp_dir) -> Callable[..., BuildConfig]:
    """Factory for BuildConfig with test-friendly defaults.

    Defaults: output tmp_path/out/sprite, 8000 Hz mono, exports ogg + mp3.
    """

    def _make(**overrides) -> BuildConfig:
        options = {
            "output": str(tmp_path / "out" / "sprite"),
            "samplerate": SAMPLE_RATE,
            "channels": 1,
            "export": ["ogg", "mp3"],
            "temp_dir": str(temp_dir),
        }
        options.update(overrides)
        return BuildConfig(**options)

    return _make


@pytest.fixture
def make_transcoder(fake_ffmpeg) -> Callable[[BuildConfig], Transcoder]:
    def _make(config: BuildConfig) -> Transcoder:
        return Transcoder(config, command=fake_ffmpeg)

    return _make


@pytest.fixture
def make_clip(tmp_path) -> Callable[..., Path]:
    """Factory writing a raw PCM clip of ``seconds`` length into tmp_path/clips."""
    clips_dir = tmp_path / "clips"

    def _make(name: str, seconds: float, subdir: str = "") -> Path:
        folder = clips_dir / subdir if subdir else clips_dir
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / name
        frames = int(round(seconds * SAMPLE_RATE))
        path.write_bytes(b"\x01\x00" * frames)
        return path

    return _make


def leftover_temp_files(temp_dir: Path) -> List[str]:
    return sorted(name for name in os.listdir(temp_dir) if name.startswith("audiosprite."))

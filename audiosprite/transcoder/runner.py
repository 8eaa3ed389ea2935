"""Async adapter around the external transcoder (ffmpeg) and afconvert.

WHY: Decoding arbitrary input clips to raw PCM and encoding the finished
track into web containers is delegated to ffmpeg. The rest of the package
should not care about process spawning, pipe plumbing, or exit codes; it
needs a typed interface that either returns a path or raises a typed
error it can report.

HOW: Transcoder wraps asyncio.create_subprocess_exec. decode() pipes the
process's stdout into a temp file and joins three independent completions
(stdout copied, stderr drained, process exited) with asyncio.gather.
encode() runs one ffmpeg invocation per output. convert_caf() runs the
macOS-only afconvert step and reports whether it produced anything.

RULES:
- decode:  ffmpeg -i <abs src> -ar <sr> -ac <ch> -f s16le pipe:
- encode:  ffmpeg -y -ar <sr> -ac <ch> -f s16le -i <src> <args...> <dest>
- A binary that cannot be spawned raises TranscoderUnavailableError
- A non-zero exit raises DecodeError / EncodeError with exit code and signal
- A decode is only complete once the process exited AND stdout was copied
- Partially written decode output is removed on failure
- The afconvert step is a no-op (returns False) off macOS or when the
  tool is not on PATH
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
import signal
import sys
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from audiosprite.config import (
    AFCONVERT_BINARY,
    FFMPEG_BINARY,
    RAW_FORMAT_TAG,
    TEMP_FILE_PREFIX,
)
from audiosprite.core.models import BuildConfig

logger = logging.getLogger(__name__)

_PIPE_CHUNK_BYTES = 64 * 1024
_STDERR_TAIL_CHARS = 800

Command = Union[str, Sequence[str]]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AudioSpriteError(Exception):
    """Base class for every error that aborts a sprite build."""


class SourceNotFoundError(AudioSpriteError):
    """Raised when an input clip path does not exist.

    RULES:
    - Raised before any process is spawned for that clip
    - path holds the path as given by the caller
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__("File does not exist: {}".format(path))


class TranscoderUnavailableError(AudioSpriteError):
    """Raised when the transcoder binary cannot be invoked at all."""


class TranscodeError(AudioSpriteError):
    """Raised when a transcoder process exits unsuccessfully.

    WHY: Callers need the exit code or signal to tell a bad input apart
    from a killed process, and the tail of stderr to see ffmpeg's reason.

    RULES:
    - exit_code is None when the process was killed by a signal
    - signal is the signal name (e.g. "SIGKILL") or None
    - stderr_tail holds at most the last 800 characters of stderr
    """

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        signal: Optional[str] = None,
        stderr_tail: str = "",
    ) -> None:
        self.exit_code = exit_code
        self.signal = signal
        self.stderr_tail = stderr_tail
        detail = "exit code {}".format(exit_code) if signal is None else "signal {}".format(signal)
        super().__init__("{} ({})".format(message, detail))


class DecodeError(TranscodeError):
    """Raised when an input clip could not be decoded to raw PCM."""

    def __init__(self, source: Path, **kwargs) -> None:  # noqa: ANN003
        self.source = Path(source)
        super().__init__("File could not be added: {}".format(source), **kwargs)


class EncodeError(TranscodeError):
    """Raised when exporting to an output format fails."""

    def __init__(self, format: str, dest: Path, **kwargs) -> None:  # noqa: ANN003
        self.format = format
        self.dest = Path(dest)
        super().__init__("Error exporting {} file: {}".format(format, dest), **kwargs)


class SecondaryConvertError(TranscodeError):
    """Raised when the afconvert step fails. Never aborts a build."""


def split_returncode(returncode: int) -> Tuple[Optional[int], Optional[str]]:
    """Split an asyncio returncode into (exit_code, signal_name).

    Negative return codes mean the process was killed by that signal.
    """
    if returncode >= 0:
        return returncode, None
    try:
        name = signal.Signals(-returncode).name
    except ValueError:
        name = str(-returncode)
    return None, name


def _tail(stderr: bytes) -> str:
    return stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL_CHARS:].strip()


async def _communicate(proc: asyncio.subprocess.Process) -> bytes:
    """Wait for ``proc`` and return its stderr; kill it if the wait is interrupted."""
    try:
        _, stderr = await proc.communicate()
    except BaseException:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    return stderr or b""


# ---------------------------------------------------------------------------
# Transcoder
# ---------------------------------------------------------------------------


class Transcoder:
    """Async wrapper for ffmpeg decode/encode calls of one build.

    WHY: Every ffmpeg call in a build shares the same raw PCM parameters
    (sample rate, channels, s16le). Binding them to one object keeps the
    argument contract in a single place.

    HOW: ``command`` is the binary (or a full command prefix, which tests
    use to run a stand-in script through the Python interpreter). Each
    method spawns one short-lived child process.

    RULES:
    - command defaults to config.FFMPEG_BINARY
    - afconvert defaults to config.AFCONVERT_BINARY
    - Temp files live in config.temp_dir (system default when unset)
    """

    def __init__(
        self,
        config: BuildConfig,
        command: Optional[Command] = None,
        afconvert: Optional[str] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        command = command or FFMPEG_BINARY
        self._command: List[str] = [command] if isinstance(command, str) else list(command)
        self._afconvert = afconvert or AFCONVERT_BINARY
        self._config = config
        self._log = log or logger

    @property
    def raw_args(self) -> List[str]:
        """Arguments describing the raw PCM stream on either side of ffmpeg."""
        return [
            "-ar", str(self._config.samplerate),
            "-ac", str(self._config.channels),
            "-f", RAW_FORMAT_TAG,
        ]

    def make_temp(self) -> Path:
        """Create an empty, uniquely named temp file and return its path."""
        fd, name = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX + ".", dir=self._config.temp_dir)
        os.close(fd)
        self._log.debug("Created temporary file %s", name)
        return Path(name)

    async def _spawn(self, program: List[str], args: List[str], **kwargs) -> asyncio.subprocess.Process:  # noqa: ANN003
        cmd = program + args
        self._log.debug("Spawn: %s", " ".join(shlex.quote(part) for part in cmd))
        try:
            return await asyncio.create_subprocess_exec(*cmd, **kwargs)
        except (FileNotFoundError, PermissionError) as exc:
            raise TranscoderUnavailableError(
                "{} was not found on your path".format(program[0])
            ) from exc

    # ------------------------------------------------------------------
    # Availability check
    # ------------------------------------------------------------------

    async def check_available(self) -> str:
        """Run ``ffmpeg -version`` and return the first line of its output.

        RULES:
        - Raises TranscoderUnavailableError when the binary is missing
          or exits non-zero
        """
        proc = await self._spawn(
            self._command,
            ["-version"],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await proc.communicate()
        if proc.returncode != 0:
            raise TranscoderUnavailableError(
                "{} -version exited with code {}".format(self._command[0], proc.returncode)
            )
        lines = stdout.decode("utf-8", errors="replace").splitlines()
        return lines[0] if lines else ""

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    async def decode(self, source: Path, dest: Optional[Path] = None) -> Path:
        """Decode one input clip into raw PCM.

        WHY: The track is assembled from raw PCM so offsets can be
        computed from byte counts. Every clip is decoded to the same
        sample rate, channel count, and sample format first.

        HOW: Spawns ffmpeg writing to stdout, copies stdout into ``dest``
        chunk by chunk, drains stderr, and waits for the exit, all three
        joined with asyncio.gather.

        RULES:
        - Missing source -> SourceNotFoundError (nothing spawned)
        - Non-zero exit or empty output -> DecodeError, dest removed
        - On any other failure the child is killed before re-raising

        Args:
            source: Input clip path.
            dest: Temp file to write; a new one is created when omitted.

        Returns:
            Path of the file holding the decoded PCM.
        """
        source = Path(source)
        self._log.debug("Start processing %s", source)
        if not source.exists():
            raise SourceNotFoundError(source)

        dest = Path(dest) if dest is not None else self.make_temp()
        proc = await self._spawn(
            self._command,
            ["-i", str(source.resolve())] + self.raw_args + ["pipe:"],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        async def _copy_stdout() -> int:
            written = 0
            with open(dest, "wb") as f:
                while True:
                    chunk = await proc.stdout.read(_PIPE_CHUNK_BYTES)
                    if not chunk:
                        break
                    f.write(chunk)
                    written += len(chunk)
            return written

        try:
            written, stderr, returncode = await asyncio.gather(
                _copy_stdout(),
                proc.stderr.read(),
                proc.wait(),
            )
        except BaseException:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            dest.unlink(missing_ok=True)
            raise

        if returncode != 0:
            dest.unlink(missing_ok=True)
            exit_code, sig = split_returncode(returncode)
            raise DecodeError(source, exit_code=exit_code, signal=sig, stderr_tail=_tail(stderr))

        if written == 0:
            dest.unlink(missing_ok=True)
            raise DecodeError(source, exit_code=0, stderr_tail="decoded stream is empty")

        return dest

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    async def encode(self, src: Path, dest: Path, args: Sequence[str], format: str) -> Path:
        """Encode raw PCM ``src`` into ``dest`` with encoder ``args``.

        Raises EncodeError (tagged with ``format``) on a non-zero exit.
        """
        proc = await self._spawn(
            self._command,
            ["-y"] + self.raw_args + ["-i", str(src)] + list(args) + [str(dest)],
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        stderr = await _communicate(proc)
        if proc.returncode != 0:
            exit_code, sig = split_returncode(proc.returncode)
            raise EncodeError(format, dest, exit_code=exit_code, signal=sig, stderr_tail=_tail(stderr))
        return Path(dest)

    # ------------------------------------------------------------------
    # Secondary conversion (macOS only)
    # ------------------------------------------------------------------

    def secondary_convert_available(self) -> bool:
        return sys.platform == "darwin" and shutil.which(self._afconvert) is not None

    async def convert_caf(self, src: Path, dest: Path) -> bool:
        """Convert an AIFF export into an IMA4 Core Audio Format file.

        RULES:
        - Returns False without spawning anything when unavailable
        - Returns True once dest has been written
        - Raises SecondaryConvertError on a non-zero exit
        """
        if not self.secondary_convert_available():
            self._log.debug("Skipping caf conversion: %s unavailable on %s", self._afconvert, sys.platform)
            return False

        proc = await self._spawn(
            [self._afconvert],
            ["-f", "caff", "-d", "ima4", str(src), str(dest)],
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        stderr = await _communicate(proc)
        if proc.returncode != 0:
            exit_code, sig = split_returncode(proc.returncode)
            raise SecondaryConvertError(
                "Error exporting caf file: {}".format(dest),
                exit_code=exit_code,
                signal=sig,
                stderr_tail=_tail(stderr),
            )
        return True

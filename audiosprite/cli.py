"""Command-line interface for the audio sprite packer.

WHY: Game and web developers build sprites as part of an asset pipeline,
usually from a shell script or a Makefile. The CLI wires together input
expansion, the build configuration, the async build, and writing the
manifest next to the exported audio, behind a single command.

HOW: Uses argparse with the flag set of the long-standing ``audiosprite``
tool. Input patterns are glob-expanded and de-duplicated, options are
validated into a BuildConfig, and the async pipeline runs via
asyncio.run(). Log output goes to stderr through the logging module at
the level chosen with --log; the manifest is written to <output>.json.

RULES:
- Positional arguments: input files or glob patterns, processed in order
- No inputs -> error plus usage on stderr, exit code 1
- --export, --rawparts: comma-separated extension lists
- --format: default (alias jukebox), howler, howler2, createjs
- --loop may be given several times
- Any build failure prints "Error: ..." to stderr and exits 1; no
  manifest is written in that case
"""

from __future__ import annotations

import argparse
import asyncio
import glob
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from audiosprite.config import (
    DEFAULT_BITRATE_KBPS,
    DEFAULT_CHANNELS,
    DEFAULT_EXPORT_FORMATS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_SAMPLE_RATE,
    LOG_LEVELS,
    MAX_PARALLEL_EXPORTS,
)
from audiosprite.core.models import BuildConfig, ManifestFormat
from audiosprite.core.pipeline import SpriteBuilder, write_manifest
from audiosprite.transcoder.runner import AudioSpriteError

logger = logging.getLogger("audiosprite")


def expand_inputs(patterns: List[str]) -> List[str]:
    """Expand glob patterns and drop repeated paths, keeping first positions.

    WHY: Shells on Windows do not expand wildcards, so ``*.wav`` arrives
    literally. Expanding here gives the same behavior everywhere.

    RULES:
    - Patterns without magic characters are kept verbatim (even if missing,
      so the build can report the missing file)
    - Matches of one pattern are sorted for a stable order
    - A path listed more than once is kept only at its first position
    """
    expanded: List[str] = []
    for pattern in patterns:
        if glob.has_magic(pattern):
            expanded.extend(sorted(glob.glob(pattern)))
        else:
            expanded.append(pattern)

    seen: set = set()
    unique: List[str] = []
    for path in expanded:
        if path not in seen:
            seen.add(path)
            unique.append(path)
    return unique


def _configure_logging(level_name: str) -> None:
    level = LOG_LEVELS.get(level_name.lower(), logging.INFO)
    logging.addLevelName(LOG_LEVELS["notice"], "NOTICE")
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(levelname)s: %(message)s",
    )
    logger.setLevel(level)


def config_from_args(args: argparse.Namespace) -> BuildConfig:
    """Validate parsed arguments into a BuildConfig (raises ValidationError)."""
    return BuildConfig(
        output=args.output,
        path=args.path,
        export=args.export,
        format=args.format,
        autoplay=args.autoplay,
        loop=args.loop or [],
        silence=args.silence,
        gap=args.gap,
        minlength=args.minlength,
        bitrate=args.bitrate,
        vbr=args.vbr,
        vbr_vorbis=args.vbr_vorbis,
        samplerate=args.samplerate,
        channels=args.channels,
        rawparts=args.rawparts,
        ignorerounding=bool(args.ignorerounding),
        max_parallel_exports=args.parallel_exports,
    )


async def _run_build(files: List[str], config: BuildConfig) -> Path:
    builder = SpriteBuilder(config, log=logger)
    result = await builder.build(files)
    path = write_manifest(result.manifest, config.output)
    logger.info("Exported json OK (file=%s)", path)
    logger.info("All done")
    return path


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable: tests can inspect the parser without running a build.
    """
    parser = argparse.ArgumentParser(
        prog="audiosprite",
        description="Concatenate audio files into one sprite track and write "
                    "a JSON manifest with the offset of every clip.",
        usage="audiosprite [options] file1.mp3 file2.mp3 *.wav",
    )

    parser.add_argument("files", nargs="*", help="Input audio files or glob patterns.")

    parser.add_argument(
        "-o", "--output", default="output",
        help="Name for the output files (default: %(default)s).",
    )
    parser.add_argument(
        "-u", "--path", default="",
        help="Path for files to be used on final JSON.",
    )
    parser.add_argument(
        "-e", "--export", default=",".join(DEFAULT_EXPORT_FORMATS),
        help="Limit exported file types. Comma separated extension list "
             "(default: %(default)s).",
    )
    parser.add_argument(
        "-f", "--format", default="jukebox",
        help="Format of the output JSON file: jukebox/{}, {}, {}, {} "
             "(default: %(default)s).".format(
                 ManifestFormat.DEFAULT.value,
                 ManifestFormat.HOWLER.value,
                 ManifestFormat.HOWLER2.value,
                 ManifestFormat.CREATEJS.value,
             ),
    )
    parser.add_argument(
        "-l", "--log", default=DEFAULT_LOG_LEVEL, choices=sorted(LOG_LEVELS),
        help="Log level (default: %(default)s).",
    )
    parser.add_argument("-a", "--autoplay", default=None, help="Autoplay sprite name.")
    parser.add_argument(
        "--loop", action="append", default=None,
        help="Loop sprite name, can be passed multiple times.",
    )
    parser.add_argument(
        "-s", "--silence", type=float, default=0,
        help='Add special "silence" track with specified duration.',
    )
    parser.add_argument(
        "-g", "--gap", type=float, default=1,
        help="Silence gap between sounds in seconds (default: %(default)s).",
    )
    parser.add_argument(
        "-m", "--minlength", type=float, default=0,
        help="Minimum sound duration in seconds (default: %(default)s).",
    )
    parser.add_argument(
        "-b", "--bitrate", type=int, default=DEFAULT_BITRATE_KBPS,
        help="Bit rate. Works for: ac3, mp3, mp4, m4a, ogg, opus (default: %(default)s).",
    )
    parser.add_argument(
        "-v", "--vbr", type=int, default=-1,
        help="VBR [0-9]. Works for: mp3. -1 disables VBR.",
    )
    parser.add_argument(
        "-q", "--vbr-vorbis", "--vbr:vorbis", dest="vbr_vorbis", type=int, default=-1,
        help="qscale [0-10 is highest quality]. Works for: webm. -1 disables qscale.",
    )
    parser.add_argument(
        "-r", "--samplerate", type=int, default=DEFAULT_SAMPLE_RATE,
        help="Sample rate (default: %(default)s).",
    )
    parser.add_argument(
        "-c", "--channels", type=int, default=DEFAULT_CHANNELS,
        help="Number of channels, 1=mono, 2=stereo (default: %(default)s).",
    )
    parser.add_argument(
        "-p", "--rawparts", default="",
        help="Include raw slices (for Web Audio API) in specified formats.",
    )
    parser.add_argument(
        "-i", "--ignorerounding", type=int, choices=(0, 1), default=0,
        help="Bypass sound placement on whole second boundaries (0=round, 1=bypass).",
    )
    parser.add_argument(
        "--parallel-exports", type=int, default=MAX_PARALLEL_EXPORTS,
        help="Maximum number of final-format encodes run at once (default: %(default)s).",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log)
    logger.debug("Parsed arguments: %s", vars(args))

    files = expand_inputs(args.files)
    if not files:
        logger.error("No input files specified.")
        parser.print_help(sys.stderr)
        sys.exit(1)

    try:
        config = config_from_args(args)
    except ValidationError as e:
        print("Error: {}".format(e), file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(_run_build(files, config))
    except KeyboardInterrupt:
        print("\nCancelled by user.", file=sys.stderr)
        sys.exit(130)
    except (AudioSpriteError, OSError) as e:
        print("Error: {}".format(e), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

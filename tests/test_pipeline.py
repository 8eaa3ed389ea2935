"""End-to-end tests for SpriteBuilder with the stand-in transcoder.

WHY: The builder sequences decode, append, silence, raw parts, and the
final exports, and owns every temp file. These tests check the resulting
manifest and files, and that nothing is left behind when a step fails.
"""

from __future__ import annotations

import asyncio

import pytest

from audiosprite.core.models import BuildConfig
from audiosprite.core.pipeline import (
    DuplicateClipNameError,
    NoInputFilesError,
    SpriteBuilder,
    build_sprite,
    clip_name,
    prepare_inputs,
)
from audiosprite.transcoder.runner import (
    DecodeError,
    EncodeError,
    SourceNotFoundError,
    Transcoder,
)
from conftest import BYTES_PER_SECOND, leftover_temp_files


def _build(config, transcoder, files):
    return asyncio.run(SpriteBuilder(config, transcoder=transcoder).build(files))


# ---------------------------------------------------------------------------
# Input handling
# ---------------------------------------------------------------------------


class TestClipNames:

    @pytest.mark.parametrize("path,expected", [
        ("sounds/beep.wav", "beep"),
        ("boop.mp3", "boop"),
        ("archive.tar.gz", "archive.tar"),
        ("noext", "noext"),
        ("dir.d/trailing.", "trailing."),
    ])
    def test_last_extension_stripped(self, path, expected):
        assert clip_name(path) == expected


class TestPrepareInputs:

    def test_same_path_given_twice_is_processed_once(self):
        inputs = prepare_inputs(["a.wav", "b.wav", "a.wav"], BuildConfig())
        assert [str(p) for p in inputs] == ["a.wav", "b.wav"]

    def test_clashing_names_rejected(self):
        with pytest.raises(DuplicateClipNameError) as excinfo:
            prepare_inputs(["one/beep.wav", "two/beep.mp3"], BuildConfig())
        assert excinfo.value.name == "beep"
        assert len(excinfo.value.paths) == 2

    def test_clip_named_silence_clashes_with_leading_silence(self):
        prepare_inputs(["silence.wav"], BuildConfig())
        with pytest.raises(DuplicateClipNameError):
            prepare_inputs(["silence.wav"], BuildConfig(silence=1))

    def test_no_inputs(self):
        with pytest.raises(NoInputFilesError):
            prepare_inputs([], BuildConfig())


# ---------------------------------------------------------------------------
# Successful builds
# ---------------------------------------------------------------------------


class TestBuild:

    def test_two_clips(self, make_config, make_transcoder, make_clip, tmp_path, temp_dir):
        config = make_config(autoplay="boop")
        beep = make_clip("beep.wav", 1.75)
        boop = make_clip("boop.wav", 1.25)

        result = _build(config, make_transcoder(config), [beep, boop])

        spritemap = result.manifest["spritemap"]
        assert spritemap["beep"]["start"] == 0
        assert spritemap["beep"]["end"] == pytest.approx(1.75)
        assert spritemap["beep"]["loop"] is False
        assert spritemap["boop"]["start"] == pytest.approx(3.0)
        assert spritemap["boop"]["end"] == pytest.approx(4.25)
        assert spritemap["boop"]["loop"] is True
        assert result.manifest["autoplay"] == "boop"

        out = tmp_path / "out"
        assert result.manifest["resources"] == [str(out / "sprite.ogg"), str(out / "sprite.mp3")]
        assert result.outputs == [out / "sprite.ogg", out / "sprite.mp3"]
        assert leftover_temp_files(temp_dir) == []

    def test_track_layout(self, make_config, make_transcoder, make_clip, tmp_path):
        config = make_config(export=["wav"])
        beep = make_clip("beep.wav", 1.75)
        boop = make_clip("boop.wav", 1.25)

        _build(config, make_transcoder(config), [beep, boop])

        track = (tmp_path / "out" / "sprite.wav").read_bytes()
        # beep, 1.25s silence, boop, 1.75s silence
        assert len(track) == int(6.0 * BYTES_PER_SECOND)
        beep_len = int(1.75 * BYTES_PER_SECOND)
        boop_start = 3 * BYTES_PER_SECOND
        assert track[:beep_len] == beep.read_bytes()
        assert track[beep_len:boop_start] == bytes(boop_start - beep_len)
        assert track[boop_start:boop_start + len(boop.read_bytes())] == boop.read_bytes()

    def test_output_directory_created(self, make_config, make_transcoder, make_clip, tmp_path):
        config = make_config(output=str(tmp_path / "deep" / "nested" / "fx"))
        _build(config, make_transcoder(config), [make_clip("a.wav", 0.5)])
        assert (tmp_path / "deep" / "nested" / "fx.ogg").exists()

    def test_leading_silence(self, make_config, make_transcoder, make_clip):
        config = make_config(silence=2)
        result = _build(config, make_transcoder(config), [make_clip("beep.wav", 1.0)])

        spritemap = result.manifest["spritemap"]
        assert list(spritemap) == ["silence", "beep"]
        assert spritemap["silence"] == {"start": 0.0, "end": 2.0, "loop": True}
        assert spritemap["beep"]["start"] == pytest.approx(3.0)
        assert result.manifest["autoplay"] == "silence"

    def test_ignorerounding(self, make_config, make_transcoder, make_clip):
        config = make_config(ignorerounding=True)
        result = _build(config, make_transcoder(config), [make_clip("beep.wav", 1.75), make_clip("boop.wav", 1.25)])
        assert result.manifest["spritemap"]["boop"]["start"] == pytest.approx(2.75)

    def test_raw_parts_numbering(self, make_config, make_transcoder, make_clip, tmp_path):
        config = make_config(export=["ogg"], rawparts=["mp3"])
        clips = [make_clip("clip{:02d}.wav".format(i), 0.25) for i in range(12)]

        result = _build(config, make_transcoder(config), clips)

        out = tmp_path / "out"
        expected = [out / "sprite_{:03d}.mp3".format(i) for i in range(1, 13)]
        assert all(path.exists() for path in expected)
        assert result.outputs == expected + [out / "sprite.ogg"]
        # raw parts never show up as resources
        assert result.manifest["resources"] == [str(out / "sprite.ogg")]
        assert (out / "sprite_007.mp3").read_bytes() == clips[6].read_bytes()

    def test_idempotent(self, make_config, make_transcoder, make_clip):
        config = make_config(minlength=1, loop=["b"])
        clips = [make_clip("a.wav", 0.4), make_clip("b.wav", 2.3), make_clip("c.wav", 1.0)]

        first = _build(config, make_transcoder(config), clips)
        second = _build(config, make_transcoder(config), clips)

        assert first.manifest == second.manifest

    def test_howler_format(self, make_config, make_transcoder, make_clip, tmp_path):
        config = make_config(format="howler2", path="audio", autoplay="b")
        result = _build(config, make_transcoder(config), [make_clip("a.wav", 1.0), make_clip("b.wav", 1.0)])
        assert result.manifest == {
            "src": ["audio/sprite.ogg", "audio/sprite.mp3"],
            "sprite": {"a": [0.0, 1000.0], "b": [2000.0, 1000.0, True]},
        }

    def test_build_sprite_with_options(self, fake_ffmpeg, make_clip, tmp_path, temp_dir):
        options = {
            "output": str(tmp_path / "out" / "sprite"),
            "samplerate": 8000,
            "export": "ogg",
            "temp_dir": str(temp_dir),
        }
        config = BuildConfig(**options)
        result = asyncio.run(build_sprite(
            [make_clip("a.wav", 0.5)],
            transcoder=Transcoder(config, command=fake_ffmpeg),
            **options,
        ))
        assert list(result.manifest["spritemap"]) == ["a"]


# ---------------------------------------------------------------------------
# Failed builds
# ---------------------------------------------------------------------------


class TestFailures:

    def test_missing_second_clip(self, make_config, make_transcoder, make_clip, tmp_path, temp_dir):
        config = make_config(rawparts=["wav"])
        beep = make_clip("beep.wav", 1.0)

        with pytest.raises(SourceNotFoundError):
            _build(config, make_transcoder(config), [beep, tmp_path / "missing.wav"])

        assert leftover_temp_files(temp_dir) == []
        # the first clip's raw part is removed with the failed build
        assert list((tmp_path / "out").iterdir()) == []

    def test_corrupt_clip(self, make_config, make_transcoder, make_clip, temp_dir):
        config = make_config()
        with pytest.raises(DecodeError):
            _build(config, make_transcoder(config), [make_clip("a.wav", 1.0), make_clip("corrupt.wav", 1.0)])
        assert leftover_temp_files(temp_dir) == []

    def test_encode_failure(self, make_config, make_transcoder, make_clip, tmp_path, temp_dir, monkeypatch):
        monkeypatch.setenv("FAKE_FFMPEG_FAIL", "mp3")
        config = make_config(export=["ogg", "mp3"], rawparts=["wav"])
        with pytest.raises(EncodeError) as excinfo:
            _build(config, make_transcoder(config), [make_clip("a.wav", 1.0)])
        assert excinfo.value.format == "mp3"
        assert leftover_temp_files(temp_dir) == []
        # sprite.ogg and sprite_001.wav were written before mp3 failed
        assert list((tmp_path / "out").iterdir()) == []

    def test_parallel_encode_failure_leaves_no_outputs(
        self, make_config, make_transcoder, make_clip, tmp_path, temp_dir, monkeypatch,
    ):
        monkeypatch.setenv("FAKE_FFMPEG_FAIL", "mp3")
        config = make_config(export=["ogg", "mp3", "wav"], max_parallel_exports=3)
        with pytest.raises(EncodeError):
            _build(config, make_transcoder(config), [make_clip("a.wav", 1.0)])
        assert leftover_temp_files(temp_dir) == []
        assert list((tmp_path / "out").iterdir()) == []

    def test_failed_rebuild_removes_overwritten_export(
        self, make_config, make_transcoder, make_clip, tmp_path, monkeypatch,
    ):
        config = make_config(export=["ogg"])
        clip = make_clip("a.wav", 1.0)
        _build(config, make_transcoder(config), [clip])
        assert (tmp_path / "out" / "sprite.ogg").exists()

        monkeypatch.setenv("FAKE_FFMPEG_FAIL", "mp3")
        failing = make_config(export=["ogg", "mp3"])
        with pytest.raises(EncodeError):
            _build(failing, make_transcoder(failing), [clip])
        assert not (tmp_path / "out" / "sprite.ogg").exists()

    def test_duplicate_names_fail_before_decoding(self, make_config, make_clip, temp_dir):
        config = make_config()
        clips = [make_clip("beep.wav", 1.0, subdir="one"), make_clip("beep.wav", 1.0, subdir="two")]

        class _NoTranscoder:
            def __getattr__(self, name):
                raise AssertionError("transcoder used: {}".format(name))

        with pytest.raises(DuplicateClipNameError):
            asyncio.run(SpriteBuilder(config, transcoder=_NoTranscoder()).build(clips))
        assert leftover_temp_files(temp_dir) == []

"""Tests for the pure timeline fold (offsets, padding, rounding, loops).

No files or processes are involved: clips are described by their decoded
byte length only. At 8000 Hz mono one second is 16000 bytes.
"""

from __future__ import annotations

import pytest

from audiosprite.core.models import BuildConfig, ClipEntry, Timeline
from audiosprite.core.timeline import (
    add_resource,
    advance,
    append_clip,
    byte_duration,
    compute_timing,
    is_looping,
    seed_silence,
)

BPS = 16000


def _config(**overrides) -> BuildConfig:
    options = {"samplerate": 8000, "channels": 1}
    options.update(overrides)
    return BuildConfig(**options)


def _fold(names_and_seconds, config):
    timeline = Timeline(autoplay=config.autoplay)
    timeline, lead = seed_silence(timeline, config)
    timeline = advance(timeline, lead)
    silences = []
    for name, seconds in names_and_seconds:
        folded = append_clip(timeline, name, int(seconds * BPS), config)
        silences.append(folded.silence)
        timeline = advance(folded.timeline, folded.silence)
    return timeline, silences


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------


class TestDurations:

    def test_byte_duration_mono(self):
        assert byte_duration(24000, _config()) == pytest.approx(1.5)

    def test_byte_duration_stereo(self):
        assert byte_duration(32000, _config(channels=2)) == pytest.approx(1.0)

    def test_rounding_slack_up_to_next_second(self):
        timing = compute_timing(int(1.75 * BPS), _config())
        assert timing.delta == pytest.approx(0.25)
        assert timing.extra == 0.0
        assert timing.trailing_silence(1.0) == pytest.approx(1.25)

    def test_whole_second_clip_needs_no_slack(self):
        timing = compute_timing(2 * BPS, _config())
        assert timing.delta == 0

    def test_minlength_padding(self):
        timing = compute_timing(int(0.5 * BPS), _config(minlength=2))
        assert timing.extra == pytest.approx(1.5)
        assert timing.recorded == pytest.approx(2.0)
        assert timing.delta == pytest.approx(0.0)

    def test_ignorerounding_drops_slack_and_padding(self):
        timing = compute_timing(int(0.5 * BPS), _config(minlength=2, ignorerounding=True))
        assert timing.delta == 0.0
        assert timing.extra == 0.0
        assert timing.trailing_silence(1.0) == pytest.approx(1.0)
        # the spritemap length still includes the padding
        assert timing.recorded == pytest.approx(2.0)

    def test_ignorerounding_can_keep_padding(self):
        config = _config(minlength=2, ignorerounding=True, rounding_bypass_drops_minlength=False)
        timing = compute_timing(int(0.5 * BPS), config)
        assert timing.delta == 0.0
        assert timing.extra == pytest.approx(1.5)


# ---------------------------------------------------------------------------
# Fold
# ---------------------------------------------------------------------------


class TestAppendClip:

    def test_two_clip_offsets(self):
        config = _config(autoplay="boop")
        timeline, silences = _fold([("beep", 1.75), ("boop", 1.25)], config)

        beep = timeline.spritemap["beep"]
        boop = timeline.spritemap["boop"]
        assert beep.start == 0
        assert beep.end == pytest.approx(1.75)
        assert beep.loop is False
        assert boop.start == pytest.approx(3.0)
        assert boop.end == pytest.approx(4.25)
        assert boop.loop is True
        assert silences == [pytest.approx(1.25), pytest.approx(1.75)]
        assert timeline.autoplay == "boop"

    def test_next_start_is_previous_start_plus_duration_plus_silence(self):
        config = _config(minlength=1)
        clips = [("a", 0.3), ("b", 2.2), ("c", 1.0), ("d", 0.01)]
        timeline, silences = _fold(clips, config)

        entries = [timeline.spritemap[name] for name, _ in clips]
        for (name, seconds), entry, silence, following in zip(clips, entries, silences, entries[1:]):
            assert following.start == pytest.approx(entry.start + seconds + silence)

    def test_entry_length_includes_minlength_padding(self):
        timeline, _ = _fold([("short", 0.25)], _config(minlength=1.5))
        entry = timeline.spritemap["short"]
        assert entry.end - entry.start == pytest.approx(1.5)

    def test_clips_start_on_whole_seconds_when_rounding(self):
        timeline, _ = _fold([("a", 0.3), ("b", 1.7), ("c", 2.05)], _config(gap=0.5))
        starts = [e.start for e in timeline.spritemap.values()]
        # whole seconds plus the accumulated half-second gaps
        assert starts == [pytest.approx(0), pytest.approx(1.5), pytest.approx(4.0)]

    def test_ignorerounding_places_clips_back_to_back_with_gap(self):
        timeline, _ = _fold([("beep", 1.75), ("boop", 1.25)], _config(ignorerounding=True))
        assert timeline.spritemap["boop"].start == pytest.approx(2.75)

    def test_input_timeline_is_not_mutated(self):
        config = _config()
        before = Timeline()
        folded = append_clip(before, "a", BPS, config)
        assert before.spritemap == {}
        assert before.offset_cursor == 0.0
        assert folded.timeline.spritemap == {"a": ClipEntry(0.0, 1.0, False)}

    def test_empty_clip_rejected(self):
        with pytest.raises(ValueError, match="no audio"):
            append_clip(Timeline(), "empty", 0, _config())

    def test_spritemap_keeps_processing_order(self):
        timeline, _ = _fold([("zeta", 1), ("alpha", 1), ("mid", 1)], _config())
        assert list(timeline.spritemap) == ["zeta", "alpha", "mid"]


class TestLoopFlag:

    def test_loop_set_and_autoplay(self):
        config = _config(autoplay="music", loop=["ambience"])
        assert is_looping("music", config)
        assert is_looping("ambience", config)
        assert not is_looping("click", config)


class TestLeadingSilence:

    def test_no_silence_configured(self):
        timeline, seconds = seed_silence(Timeline(), _config())
        assert seconds == 0.0
        assert timeline.spritemap == {}

    def test_silence_clip_seeds_timeline(self):
        timeline, _ = _fold([("beep", 1.0)], _config(silence=2))
        assert list(timeline.spritemap) == ["silence", "beep"]
        assert timeline.spritemap["silence"] == ClipEntry(0.0, 2.0, True)
        assert timeline.spritemap["beep"].start == pytest.approx(3.0)
        assert timeline.autoplay == "silence"

    def test_configured_autoplay_wins_over_silence(self):
        timeline, _ = _fold([("beep", 1.0)], _config(silence=2, autoplay="beep"))
        assert timeline.autoplay == "beep"
        assert timeline.spritemap["silence"].loop is True


class TestCursorAndResources:

    def test_advance_rejects_negative(self):
        with pytest.raises(ValueError):
            advance(Timeline(), -0.1)

    def test_resources_append_in_order(self):
        timeline = add_resource(add_resource(Timeline(), "out.ogg"), "out.mp3")
        assert timeline.resources == ("out.ogg", "out.mp3")

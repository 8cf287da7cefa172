from __future__ import annotations

from reframer.core.framing.speakers import (
    SpeakerConfig,
    SpeakerTimeline,
    active_speaker_at,
    build_speaker_turns,
)
from reframer.core.types import SpeakerTurn, TranscriptWord


def _words():
    return [
        TranscriptWord(0.0, 0.5, "hello", "A"),
        TranscriptWord(0.8, 1.2, "there", "A"),
        TranscriptWord(1.3, 1.5, "uh", None),
        TranscriptWord(2.0, 2.5, "hi", "B"),
        TranscriptWord(3.5, 4.0, "so", "A"),
    ]


def test_build_speaker_turns_merges_and_clips():
    turns = build_speaker_turns(_words(), 0.0, 3.8)
    assert turns == [
        SpeakerTurn(0.0, 1.2, "A"),
        SpeakerTurn(2.0, 2.5, "B"),
        SpeakerTurn(3.5, 3.8, "A"),
    ]


def test_build_speaker_turns_splits_on_large_gap():
    words = [TranscriptWord(0.0, 0.5, "a", "A"), TranscriptWord(1.5, 2.0, "b", "A")]
    turns = build_speaker_turns(words, 0.0, 10.0, max_gap=0.6)
    assert len(turns) == 2


def test_build_speaker_turns_ignores_words_outside_segment():
    turns = build_speaker_turns(_words(), 1.9, 3.0)
    assert turns == [SpeakerTurn(2.0, 2.5, "B")]


def test_active_speaker_at_picks_largest_overlap():
    turns = build_speaker_turns(_words(), 0.0, 3.8)
    assert active_speaker_at(1.0, turns) == "A"
    assert active_speaker_at(2.3, turns) == "B"
    assert active_speaker_at(3.0, turns) == "B"
    assert active_speaker_at(10.0, turns) is None


def test_speaker_timeline_without_words_is_falsy():
    timeline = SpeakerTimeline.from_words([], 0.0, 5.0)
    assert not timeline
    assert timeline.active_speaker_at(1.0) is None


def test_speaker_timeline_uses_config_windows():
    turns = [SpeakerTurn(0.0, 1.0, "A")]
    narrow = SpeakerTimeline(turns, SpeakerConfig(window_before_s=0.1, window_after_s=0.1))
    assert narrow.active_speaker_at(1.05) == "A"
    assert narrow.active_speaker_at(1.2) is None

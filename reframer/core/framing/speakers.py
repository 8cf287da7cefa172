"""Speaker turns derived from diarized transcript words.

Turns only bias anchor choice; they never constrain crop geometry.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from reframer.core.types import SpeakerTurn, TranscriptWord


@dataclass(frozen=True)
class SpeakerConfig:
    # Same-label words further apart than this start a new turn.
    max_gap_s: float = 0.6
    window_before_s: float = 0.6
    window_after_s: float = 0.2


def build_speaker_turns(
    words: Iterable[TranscriptWord],
    seg_start: float,
    seg_end: float,
    max_gap: float = 0.6,
) -> list[SpeakerTurn]:
    """Merge consecutive same-speaker words into turns clipped to the segment."""

    labelled = sorted(
        (w for w in words if w.speaker and w.end > seg_start and w.start < seg_end),
        key=lambda w: w.start,
    )

    turns: list[SpeakerTurn] = []
    for word in labelled:
        start = max(word.start, seg_start)
        end = min(word.end, seg_end)
        if end <= start:
            continue
        last = turns[-1] if turns else None
        if last is not None and last.label == word.speaker and start - last.end <= max_gap:
            turns[-1] = SpeakerTurn(start=last.start, end=max(last.end, end), label=last.label)
        else:
            turns.append(SpeakerTurn(start=start, end=end, label=str(word.speaker)))
    return turns


def active_speaker_at(
    t: float,
    turns: Sequence[SpeakerTurn],
    window_before: float = 0.6,
    window_after: float = 0.2,
) -> str | None:
    """Label with the largest overlap with `[t - window_before, t + window_after]`."""

    lo = t - window_before
    hi = t + window_after
    overlap: dict[str, float] = {}
    for turn in turns:
        if turn.end <= lo:
            continue
        if turn.start >= hi:
            break
        ov = min(hi, turn.end) - max(lo, turn.start)
        if ov > 0:
            overlap[turn.label] = overlap.get(turn.label, 0.0) + ov
    if not overlap:
        return None
    return max(overlap.items(), key=lambda kv: kv[1])[0]


class SpeakerTimeline:
    """`active_speaker_at(time)` over the turns of one segment."""

    def __init__(self, turns: Sequence[SpeakerTurn], config: SpeakerConfig | None = None) -> None:
        self.config = config or SpeakerConfig()
        self.turns = sorted(turns, key=lambda s: s.start)

    @classmethod
    def from_words(
        cls,
        words: Iterable[TranscriptWord],
        seg_start: float,
        seg_end: float,
        config: SpeakerConfig | None = None,
    ) -> SpeakerTimeline:
        cfg = config or SpeakerConfig()
        return cls(build_speaker_turns(words, seg_start, seg_end, max_gap=cfg.max_gap_s), cfg)

    def __bool__(self) -> bool:
        return bool(self.turns)

    def active_speaker_at(self, t: float) -> str | None:
        return active_speaker_at(
            t,
            self.turns,
            window_before=self.config.window_before_s,
            window_after=self.config.window_after_s,
        )

from __future__ import annotations

import pytest

from reframer.core.framing.anchors import AnchorSelector, anchor_score, centrality, choose_anchor
from reframer.core.types import Detection

W, H = 1920, 1080


def _det(cx: float, cy: float = 540.0, size: float = 200.0, score: float = 0.9, track_id: int | None = None):
    return Detection(x=cx - size / 2, y=cy - size / 2, w=size, h=size, score=score, track_id=track_id)


def test_centrality_is_one_at_centre_and_zero_at_corner():
    assert centrality(_det(960, 540), W, H) == pytest.approx(1.0)
    assert centrality(_det(0, 0, size=2), W, H) == pytest.approx(0.0)


def test_anchor_score_formula():
    d = _det(960, 540, size=100, score=0.5)
    assert anchor_score(d, W, H) == pytest.approx(100 * 100 * 0.5 * 1.0)


def test_central_detection_beats_off_centre_one_of_same_size():
    central = _det(1000)
    edge = _det(1800)
    assert choose_anchor([edge, central], W, H) is central


def test_larger_detection_wins():
    small = _det(960, size=100)
    large = _det(1300, size=400)
    assert choose_anchor([small, large], W, H) is large


def test_choose_anchor_empty():
    assert choose_anchor([], W, H) is None


def test_selector_prefers_track_remembered_for_speaker():
    selector = AnchorSelector(W, H)
    first = selector.select([_det(960, track_id=1), _det(1700, size=150, track_id=2)], speaker="A")
    assert first.track_id == 1

    # Track 2 is now the better candidate, but speaker A stays on track 1.
    frame = [_det(1500, size=150, track_id=1), _det(960, size=400, track_id=2)]
    assert selector.select(frame, speaker="A").track_id == 1
    assert selector.select(frame, speaker=None).track_id == 2


def test_selector_remaps_when_remembered_track_disappears():
    selector = AnchorSelector(W, H)
    selector.select([_det(960, track_id=1)], speaker="A")
    picked = selector.select([_det(900, track_id=3)], speaker="A")
    assert picked.track_id == 3
    assert selector.speaker_tracks["A"] == 3


def test_selector_returns_none_without_detections():
    assert AnchorSelector(W, H).select([], speaker="A") is None

from __future__ import annotations

from reframer.core.framing.validation import validate_crop_map
from reframer.core.types import CropKeyframe

W, H = 1920, 1080


def _kf(t: float, x: int = 600, zoom: float = 1.0, w: int = 606) -> CropKeyframe:
    return CropKeyframe(t=t, x=x, y=0, w=w, h=1080, zoom=zoom)


def test_valid_crop_map_passes_all_checks():
    results = validate_crop_map([_kf(0.0), _kf(0.5), _kf(1.0)], W, H, z_floor=1.0)
    assert len(results) == 3
    assert all(r.passed for r in results)
    assert results[0].details["min_zoom"] == 1.0


def test_zoom_below_floor_is_reported():
    results = validate_crop_map([_kf(0.0), _kf(0.5, zoom=0.9)], W, H, z_floor=1.0)
    zoom = results[0]
    assert not zoom.passed
    assert zoom.details["violations"] == [0.5]


def test_out_of_bounds_crop_is_reported():
    results = validate_crop_map([_kf(0.0, x=1500)], W, H, z_floor=1.0)
    bounds = results[1]
    assert not bounds.passed
    assert bounds.details["violations"][0]["t"] == 0.0


def test_spacing_violations():
    results = validate_crop_map([_kf(0.0), _kf(0.05), _kf(0.05)], W, H, z_floor=1.0)
    spacing = results[2]
    assert not spacing.passed
    assert len(spacing.details["violations"]) == 2


def test_single_keyframe_has_no_spacing_problem():
    results = validate_crop_map([_kf(0.0)], W, H, z_floor=1.0)
    assert results[2].passed
    assert results[2].details["min_gap"] is None


def test_empty_map_fails():
    results = validate_crop_map([], W, H, z_floor=1.0)
    assert len(results) == 1
    assert not results[0].passed

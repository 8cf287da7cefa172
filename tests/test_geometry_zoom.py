from __future__ import annotations

import pytest

from reframer.core.framing.zoom import GroupExtent, required_zoom, solve_zoom_series
from reframer.core.geometry import (
    crop_size_at_zoom,
    even,
    group_bounds,
    median,
    percentile,
    step_toward,
    target_crop_width,
    weighted_median,
    zoom_floor,
)
from reframer.core.types import Detection


def test_target_crop_width_is_even_and_fits_source():
    assert target_crop_width(1920, 1080) == 606
    assert target_crop_width(1280, 720) == 404
    assert target_crop_width(500, 1080) == 500
    assert target_crop_width(601, 1080) == 600
    assert even(7) == 6


def test_zoom_floor_is_canonical():
    assert zoom_floor(1920, 1080, 0.88) == pytest.approx(1.0)
    assert zoom_floor(1920, 1080, 1.0) == pytest.approx(1.0)


def test_crop_size_at_zoom():
    assert crop_size_at_zoom(606, 1080, 1.0) == (606, 1080)
    assert crop_size_at_zoom(606, 1080, 2.0) == (303, 540)


def test_step_toward():
    assert step_toward(0, 10, 3) == 3
    assert step_toward(0, -10, 3) == -3
    assert step_toward(0, 2, 3) == 2


def test_medians_and_percentile():
    assert median([3, 1, 2]) == 2
    assert median([1, 2, 3, 4]) == 2.5
    assert median([]) == 0.0
    assert weighted_median([(10, 1), (20, 5), (30, 1)]) == 20
    assert weighted_median([]) == 0.0
    assert percentile([1, 2, 3, 4, 5, 6, 7, 8, 9, 10], 90) == 9


def test_group_bounds():
    dets = [Detection(10, 20, 30, 40, 0.9), Detection(100, 5, 10, 10, 0.9)]
    gb = group_bounds(dets)
    assert (gb.min_x, gb.min_y, gb.max_x, gb.max_y) == (10, 5, 110, 60)
    assert gb.center_x == 60
    with pytest.raises(ValueError):
        group_bounds([])


def test_required_zoom_is_one_when_group_fits():
    group = GroupExtent(w=200, h=300, inset_x=36, inset_y=86)
    assert required_zoom(group, 606, 1080, z_min=1.0) == 1.0


def test_required_zoom_for_oversized_group_respects_floor():
    group = GroupExtent(w=1200, h=300, inset_x=0, inset_y=0)
    assert required_zoom(group, 600, 1080, z_min=0.4) == pytest.approx(0.5)
    assert required_zoom(group, 600, 1080, z_min=1.0) == 1.0


def test_zoom_series_blends_with_decay_and_never_drops_below_floor():
    big = GroupExtent(w=1200, h=300, inset_x=0, inset_y=0)
    small = GroupExtent(w=100, h=100, inset_x=0, inset_y=0)

    zs = solve_zoom_series([big, small, small], 600, 1080, z_min=0.5, decay=0.2)
    assert zs[0] == pytest.approx(0.5)
    assert zs[1] == pytest.approx(0.6)
    assert zs[2] == pytest.approx(0.68)

    zs = solve_zoom_series([big] * 5 + [small] * 5, 606, 1080, z_min=1.0)
    assert all(z >= 1.0 for z in zs)

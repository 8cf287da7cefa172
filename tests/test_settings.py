from pathlib import Path

import pytest

from reframer.core.config import settings as cfg


@pytest.fixture
def no_config_file(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("RFR_CONFIG", str(tmp_path / "missing.yml"))


def test_defaults_without_config_file(no_config_file):
    s = cfg.load_settings()
    assert s.sample_fps == 12.0
    assert s.detect_every == 3
    assert s.constraints_preset == "clip"
    assert s.optimizer_learning_rate == 1.0


def test_load_settings_reads_updated_file(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("sample_fps: 8\nsmooth_alpha: 0.3\n", encoding="utf-8")
    monkeypatch.setenv("RFR_CONFIG", str(conf_path))

    first = cfg.load_settings()
    assert first.sample_fps == 8.0
    assert first.smooth_alpha == 0.3

    conf_path.write_text("sample_fps: 6\nsmooth_alpha: 0.5\n", encoding="utf-8")

    second = cfg.load_settings()
    assert second.sample_fps == 6.0
    assert second.smooth_alpha == 0.5


def test_env_overrides_yaml(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("sample_fps: 8\ndetect_every: 2\n", encoding="utf-8")
    monkeypatch.setenv("RFR_CONFIG", str(conf_path))
    monkeypatch.setenv("RFR_SAMPLE_FPS", "5")

    s = cfg.load_settings()
    assert s.sample_fps == 5.0
    assert s.detect_every == 2


def test_empty_yaml_file(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("", encoding="utf-8")
    monkeypatch.setenv("RFR_CONFIG", str(conf_path))
    assert cfg.load_settings().sample_fps == 12.0


def test_unit_interval_validation():
    with pytest.raises(ValueError):
        cfg.FramingSettings(track_iou_threshold=1.5)
    with pytest.raises(ValueError):
        cfg.FramingSettings(body_confidence=-0.1)
    with pytest.raises(ValueError):
        cfg.FramingSettings(smooth_alpha=0.0)
    assert cfg.FramingSettings(smooth_alpha=1.0).smooth_alpha == 1.0


def test_numeric_bounds_validation():
    with pytest.raises(ValueError):
        cfg.FramingSettings(detect_every=0)
    with pytest.raises(ValueError):
        cfg.FramingSettings(sample_fps=0)
    with pytest.raises(ValueError):
        cfg.FramingSettings(min_keyframe_delta_s=0)
    with pytest.raises(ValueError):
        cfg.FramingSettings(deadzone_x=-1)
    with pytest.raises(ValueError):
        cfg.FramingSettings(max_keyframes=1)
    with pytest.raises(ValueError):
        cfg.FramingSettings(track_max_age_s=0.05)
    with pytest.raises(ValueError):
        cfg.FramingSettings(detect_width=0)
    assert cfg.FramingSettings(detect_width=None).detect_width is None


def test_z_min_floor_validation():
    with pytest.raises(ValueError):
        cfg.FramingSettings(z_min_floor=0.5)
    with pytest.raises(ValueError):
        cfg.FramingSettings(z_min_floor=1.2)
    assert cfg.FramingSettings(z_min_floor=0.9).z_min_floor == 0.9


def test_constraints_preset_is_normalised():
    assert cfg.FramingSettings(constraints_preset=" Source ").constraints_preset == "source"
    with pytest.raises(ValueError):
        cfg.FramingSettings(constraints_preset="cinema")


def test_validate_assignment():
    s = cfg.FramingSettings()
    with pytest.raises(ValueError):
        s.detect_every = 0


def test_framing_config_from_settings_maps_fields():
    s = cfg.FramingSettings(
        sample_fps=6,
        detect_every=2,
        track_max_age_s=1.2,
        optimizer_iterations=40,
        max_keyframes=60,
        global_min_detections=10,
        max_filter_length=1000,
        z_min_floor=0.95,
    )
    fc = cfg.framing_config_from_settings(s)
    assert fc.sampling.fps == 6.0
    assert fc.sampling.detect_every == 2
    assert fc.tracker.max_age_s == 1.2
    assert fc.trajectory.iterations == 40
    assert fc.trajectory.z_min_floor == 0.95
    assert fc.static_crop.z_min_floor == 0.95
    assert fc.postprocess.max_keyframes == 60
    assert fc.global_sampling.min_detections == 10
    assert fc.expressions.max_filter_length == 1000


def test_settings_to_dict_round_trips():
    s = cfg.FramingSettings(sample_fps=7)
    d = cfg.settings_to_dict(s)
    assert d["sample_fps"] == 7.0
    assert cfg.FramingSettings(**d) == s

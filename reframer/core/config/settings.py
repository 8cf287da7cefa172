"""Framing engine configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `RFR_`. Algorithmic code never reads settings directly: callers
convert them once with `framing_config_from_settings()` and pass the resulting
frozen configs into each component.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reframer.core.framing.expressions import ExpressionConfig
from reframer.core.framing.pipeline import FramingConfig, SamplingConfig
from reframer.core.framing.postprocess import PostprocessConfig
from reframer.core.framing.speakers import SpeakerConfig
from reframer.core.framing.static_crop import GlobalSamplingConfig, StaticCropConfig
from reframer.core.framing.trajectory import TrajectoryConfig
from reframer.core.trackers.simple_tracker import TrackerConfig


class FramingSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `RFR_` env overrides."""

    # Frame sampling / detection
    sample_fps: float = 12.0
    # Run the detector every N sampled frames; tracks are predicted in between.
    detect_every: int = 3
    # Optional decode width for detection frames (None = native resolution).
    detect_width: int | None = None
    model_name: str = Field("yolo11n.pt")
    body_confidence: float = 0.3
    body_min_size: int = 100
    face_confidence: float = 0.5
    face_min_size: int = 80
    face_model_dir: str | None = None
    torch_threads: int | None = None

    # Tracker
    track_iou_threshold: float = 0.35
    track_max_age_s: float = 0.8
    track_min_hits: int = 2
    track_min_area: float = 300.0
    min_detection_area: float = 100.0

    # Speaker turns
    speaker_turn_max_gap_s: float = 0.6
    speaker_window_before_s: float = 0.6
    speaker_window_after_s: float = 0.2

    # Trajectory optimizer / zoom
    optimizer_lambda_v: float = 80.0
    optimizer_lambda_a: float = 500.0
    optimizer_iterations: int = 80
    # Relative to the gradient's Lipschitz bound, so values in (0, 1] are stable.
    optimizer_learning_rate: float = 1.0
    z_min_floor: float = 0.88
    z_decay: float = 0.2

    # Post-processing
    smooth_alpha: float = 0.2
    deadzone_x: float = 70.0
    deadzone_y: float = 50.0
    deadzone_zoom: float = 0.01
    max_accel: float = 900.0
    min_keyframe_delta_s: float = 0.1
    max_keyframes: int = 120
    compress_min_time_delta_s: float = 0.15
    compress_min_position_delta: float = 1.0
    compress_min_zoom_delta: float = 0.005

    # Static / global crop
    global_window_s: float = 15.0
    global_min_windows: int = 3
    global_max_windows: int = 6
    global_min_detections: int = 50
    global_min_detection_score: float = 0.3
    global_usable_start_fraction: float = 0.1
    global_usable_end_fraction: float = 0.9
    static_strong_min_score: float = 0.25
    static_strong_min_area_ratio: float = 0.008
    static_strong_min_count: int = 8
    static_two_sides_min_ratio: float = 0.18
    static_two_sides_anchor_blend: float = 0.8
    static_single_group_blend: float = 0.6
    static_center_blend: float = 0.1
    static_max_shift_ratio: float = 0.22
    segment_static_bias_fraction: float = 0.35
    segment_static_max_anchor_width: float = 0.9

    # Expressions
    constant_epsilon_px: float = 1.0
    max_filter_length: int = 65536
    warn_filter_length: int = 32768

    constraints_preset: str = Field("clip", description="clip|source")

    model_config = SettingsConfigDict(env_prefix="RFR_", validate_assignment=True)

    @field_validator(
        "track_iou_threshold",
        "global_min_detection_score",
        "static_strong_min_score",
        "static_two_sides_min_ratio",
        "static_two_sides_anchor_blend",
        "static_single_group_blend",
        "static_center_blend",
        "static_max_shift_ratio",
        "segment_static_bias_fraction",
        "global_usable_start_fraction",
        "global_usable_end_fraction",
        "body_confidence",
        "face_confidence",
    )
    def _validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("value must be in [0, 1]")
        return float(v)

    @field_validator("smooth_alpha", "z_decay", "optimizer_learning_rate", "segment_static_max_anchor_width")
    def _validate_open_unit_interval(cls, v: float) -> float:
        if not 0.0 < float(v) <= 1.0:
            raise ValueError("value must be in (0, 1]")
        return float(v)

    @field_validator(
        "deadzone_x",
        "deadzone_y",
        "deadzone_zoom",
        "max_accel",
        "optimizer_lambda_v",
        "optimizer_lambda_a",
        "track_min_area",
        "min_detection_area",
        "compress_min_time_delta_s",
        "compress_min_position_delta",
        "compress_min_zoom_delta",
        "speaker_turn_max_gap_s",
        "speaker_window_before_s",
        "speaker_window_after_s",
        "static_strong_min_area_ratio",
        "constant_epsilon_px",
    )
    def _validate_non_negative(cls, v: float) -> float:
        if float(v) < 0:
            raise ValueError("value must be >= 0")
        return float(v)

    @field_validator(
        "detect_every",
        "optimizer_iterations",
        "track_min_hits",
        "global_min_windows",
        "global_max_windows",
        "global_min_detections",
        "static_strong_min_count",
        "max_filter_length",
        "warn_filter_length",
    )
    def _validate_positive_int(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("value must be >= 1")
        return int(v)

    @field_validator("sample_fps", "global_window_s", "min_keyframe_delta_s")
    def _validate_positive(cls, v: float) -> float:
        if float(v) <= 0:
            raise ValueError("value must be > 0")
        return float(v)

    @field_validator("track_max_age_s")
    def _validate_track_max_age(cls, v: float) -> float:
        if float(v) < 0.1:
            raise ValueError("track_max_age_s must be >= 0.1")
        return float(v)

    @field_validator("z_min_floor")
    def _validate_z_min_floor(cls, v: float) -> float:
        if not 0.8 <= float(v) <= 1.0:
            raise ValueError("z_min_floor must be in [0.8, 1]")
        return float(v)

    @field_validator("max_keyframes")
    def _validate_max_keyframes(cls, v: int) -> int:
        if int(v) < 2:
            raise ValueError("max_keyframes must be >= 2")
        return int(v)

    @field_validator("detect_width", "torch_threads")
    def _validate_optional_positive(cls, v: int | None) -> int | None:
        if v is None:
            return v
        if int(v) <= 0:
            raise ValueError("value must be > 0")
        return int(v)

    @field_validator("body_min_size", "face_min_size")
    def _validate_min_size(cls, v: int) -> int:
        if int(v) < 0:
            raise ValueError("minimum detection size must be >= 0")
        return int(v)

    @field_validator("constraints_preset")
    def _validate_preset(cls, v: str) -> str:
        from reframer.core.config.presets import CONSTRAINT_PRESETS

        v2 = str(v).strip().lower()
        if v2 not in CONSTRAINT_PRESETS:
            raise ValueError(f"constraints_preset must be one of: {', '.join(CONSTRAINT_PRESETS)}")
        return v2


def settings_to_dict(settings: FramingSettings) -> dict[str, Any]:
    """Convert settings to a plain dict."""

    return cast(dict[str, Any], settings.model_dump())


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/framing.config.yml)."""

    return Path(os.getenv("RFR_CONFIG", "config/framing.config.yml"))


def load_settings() -> FramingSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = FramingSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return FramingSettings(**merged)


def framing_config_from_settings(settings: FramingSettings) -> FramingConfig:
    """Build the per-component configs from validated settings."""

    s = settings
    return FramingConfig(
        sampling=SamplingConfig(
            fps=s.sample_fps,
            detect_every=s.detect_every,
            detect_width=s.detect_width,
        ),
        tracker=TrackerConfig(
            iou_threshold=s.track_iou_threshold,
            max_age_s=s.track_max_age_s,
            min_hits=s.track_min_hits,
            min_area=s.track_min_area,
            min_detection_area=s.min_detection_area,
        ),
        speakers=SpeakerConfig(
            max_gap_s=s.speaker_turn_max_gap_s,
            window_before_s=s.speaker_window_before_s,
            window_after_s=s.speaker_window_after_s,
        ),
        trajectory=TrajectoryConfig(
            lambda_v=s.optimizer_lambda_v,
            lambda_a=s.optimizer_lambda_a,
            iterations=s.optimizer_iterations,
            learning_rate=s.optimizer_learning_rate,
            z_min_floor=s.z_min_floor,
            z_decay=s.z_decay,
            smooth_alpha=s.smooth_alpha,
            deadzone_x=s.deadzone_x,
            deadzone_y=s.deadzone_y,
        ),
        postprocess=PostprocessConfig(
            smooth_alpha=s.smooth_alpha,
            deadzone_x=s.deadzone_x,
            deadzone_y=s.deadzone_y,
            deadzone_zoom=s.deadzone_zoom,
            max_accel=s.max_accel,
            min_time_delta=s.min_keyframe_delta_s,
            max_keyframes=s.max_keyframes,
            compress_min_time_delta=s.compress_min_time_delta_s,
            compress_min_position_delta=s.compress_min_position_delta,
            compress_min_zoom_delta=s.compress_min_zoom_delta,
        ),
        static_crop=StaticCropConfig(
            strong_min_score=s.static_strong_min_score,
            strong_min_area_ratio=s.static_strong_min_area_ratio,
            strong_min_count=s.static_strong_min_count,
            two_sides_min_ratio=s.static_two_sides_min_ratio,
            two_sides_anchor_blend=s.static_two_sides_anchor_blend,
            single_group_blend=s.static_single_group_blend,
            center_blend=s.static_center_blend,
            max_shift_ratio=s.static_max_shift_ratio,
            segment_bias_fraction=s.segment_static_bias_fraction,
            segment_max_anchor_width=s.segment_static_max_anchor_width,
            z_min_floor=s.z_min_floor,
        ),
        global_sampling=GlobalSamplingConfig(
            window_s=s.global_window_s,
            min_windows=s.global_min_windows,
            max_windows=s.global_max_windows,
            min_detections=s.global_min_detections,
            min_detection_score=s.global_min_detection_score,
            usable_start_fraction=s.global_usable_start_fraction,
            usable_end_fraction=s.global_usable_end_fraction,
        ),
        expressions=ExpressionConfig(
            constant_epsilon=s.constant_epsilon_px,
            max_filter_length=s.max_filter_length,
            warn_filter_length=s.warn_filter_length,
        ),
    )

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from reframer.core.types import Constraints

# Constraint presets per call site.
#
# Notes:
# - clip: per-segment dynamic framing of a short clip
# - source: whole-video sampling runs, where slower pans and longer easing
#   keep long previews from drifting


CONSTRAINT_PRESETS: dict[str, Constraints] = {
    "clip": Constraints(
        margin=0.02,
        max_pan_per_second=400.0,
        ease_duration_ms=600.0,
        center_bias_x=0.75,
        center_bias_y=0.15,
        safe_top_fraction=0.05,
        safe_bottom_fraction=0.10,
    ),
    "source": Constraints(
        margin=0.02,
        max_pan_per_second=250.0,
        ease_duration_ms=1000.0,
        center_bias_x=0.6,
        center_bias_y=0.15,
        safe_top_fraction=0.05,
        safe_bottom_fraction=0.10,
    ),
}


PRESET_LABELS: dict[str, str] = {
    "clip": "Clip",
    "source": "Whole source",
}


def list_presets() -> list[dict[str, Any]]:
    return [
        {
            "id": preset_id,
            "label": PRESET_LABELS.get(preset_id, preset_id),
            "constraints": asdict(CONSTRAINT_PRESETS[preset_id]),
        }
        for preset_id in CONSTRAINT_PRESETS.keys()
    ]


def preset_constraints(preset_id: str) -> Constraints:
    if preset_id not in CONSTRAINT_PRESETS:
        raise KeyError(preset_id)
    return CONSTRAINT_PRESETS[preset_id]

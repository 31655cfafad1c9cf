"""
config.py

Typed configuration loading and validation for the handbeat timing engine.

Design goals
- Load at most one UTF-8 JSON config file
- Validate with pydantic (defaults included)
- Support environment variable overrides
- No other I/O beyond reading the config file (no directory creation)
- Every tunable timing, scoring and analysis constant lives here, not in code

Config file location
- If HANDBEAT_CONFIG_PATH is set, that file is used (it must exist).
- Otherwise these paths are searched in order and the first one that exists is used:
  1) ./handbeat_config.json (current working directory)
  2) <user config dir>/Handbeat/Handbeat/handbeat_config.json
  3) <user config dir>/Handbeat/Handbeat/config.json
- When none exists, the built-in defaults are used.

Example config file (handbeat_config.json)
{
  "analysis": {
    "min_bpm": 60,
    "max_bpm": 200
  },
  "scheduler": {
    "lead_time_ms": 1200,
    "circle_radius": 60
  },
  "judge": {
    "perfect_ms": 50,
    "good_ms": 100,
    "bad_ms": 150,
    "late_window_ms": 150
  },
  "scoring": {
    "hit_kinds": {
      "bad": {"points": 10, "maintains_combo": false, "accuracy_weight": 25}
    },
    "multiplier_step": 10
  }
}
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from gameplay_models import HitKind


logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a config file cannot be read, parsed or validated."""


class AnalysisConfig(BaseModel):
    min_bpm: float = Field(default=60.0, gt=0.0, description="Slowest tempo considered by tempo estimation.")
    max_bpm: float = Field(default=200.0, gt=0.0, description="Fastest tempo considered by tempo estimation.")
    frame_ms: float = Field(default=46.0, gt=0.0, description="Analysis frame length in milliseconds.")
    hop_ms: float = Field(default=10.0, gt=0.0, description="Hop between analysis frames in milliseconds.")
    min_duration_seconds: float = Field(default=2.0, ge=0.0, description="Shorter tracks are rejected.")
    silence_rms_threshold: float = Field(default=1e-4, ge=0.0, description="Tracks quieter than this RMS are rejected.")
    min_periodicity: float = Field(default=0.15, ge=0.0, le=1.0, description="Minimum normalized autocorrelation peak.")
    tempo_prior_bpm: float = Field(default=120.0, gt=0.0, description="Centre of the log-normal tempo preference.")
    tempo_prior_octaves: float = Field(default=1.0, gt=0.0, description="Width of the tempo preference in octaves.")
    local_mean_ms: float = Field(default=250.0, gt=0.0, description="Moving average window subtracted from onset flux.")
    snap_tolerance: float = Field(default=0.15, ge=0.0, le=0.5, description="Beat snapping window as a fraction of one period.")
    octave_ratio: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Halve the period while the faster octave keeps at least this share of the periodicity.",
    )
    min_beat_strength: float = Field(default=0.05, ge=0.0, le=1.0, description="Beats weaker than this are dropped.")
    chunk_frames: int = Field(default=256, ge=1, description="Frames processed between progress reports.")

    @model_validator(mode="after")
    def validate_bpm_range(self) -> "AnalysisConfig":
        if self.min_bpm >= self.max_bpm:
            raise ValueError("analysis.min_bpm must be lower than analysis.max_bpm")
        if self.hop_ms > self.frame_ms:
            raise ValueError("analysis.hop_ms must not exceed analysis.frame_ms")
        return self


class SchedulerConfig(BaseModel):
    lead_time_ms: float = Field(default=1200.0, ge=0.0, description="Spawn lead before each beat.")
    circle_radius: float = Field(default=60.0, gt=0.0, description="Hit circle radius in field pixels.")
    edge_padding: float = Field(default=20.0, ge=0.0, description="Extra distance kept from field edges.")
    min_spacing: float = Field(default=160.0, ge=0.0, description="Preferred distance from the previous circle.")
    placement_attempts: int = Field(default=12, ge=1, description="Candidate positions tried per circle.")
    layout_seed: int = Field(default=0, description="Mixed into the per-track layout seed.")


class JudgeConfig(BaseModel):
    perfect_ms: float = Field(default=50.0, ge=0.0)
    good_ms: float = Field(default=100.0, ge=0.0)
    bad_ms: float = Field(default=150.0, ge=0.0)
    late_window_ms: float = Field(default=150.0, ge=0.0, description="Circles expire once now passes beat + late window.")

    @model_validator(mode="after")
    def validate_tiers(self) -> "JudgeConfig":
        if not (self.perfect_ms <= self.good_ms <= self.bad_ms):
            raise ValueError("judge windows must satisfy perfect_ms <= good_ms <= bad_ms")
        return self


class HitKindRule(BaseModel):
    points: int = Field(default=0, ge=0)
    maintains_combo: bool = False
    accuracy_weight: float = Field(default=0.0, ge=0.0, le=100.0, description="Percent credited toward accuracy.")


class GradeThreshold(BaseModel):
    grade: str
    min_accuracy: float = Field(ge=0.0, le=100.0)

    @field_validator("grade")
    @classmethod
    def normalize_grade(cls, value: str) -> str:
        trimmed = (value or "").strip()
        if not trimmed:
            raise ValueError("grade must be a non-empty string")
        return trimmed


def _default_hit_kind_rules() -> Dict[str, HitKindRule]:
    return {
        HitKind.PERFECT.value: HitKindRule(points=100, maintains_combo=True, accuracy_weight=100.0),
        HitKind.GOOD.value: HitKindRule(points=50, maintains_combo=True, accuracy_weight=50.0),
        HitKind.BAD.value: HitKindRule(points=10, maintains_combo=False, accuracy_weight=25.0),
        HitKind.MISS.value: HitKindRule(points=0, maintains_combo=False, accuracy_weight=0.0),
    }


def _default_grade_thresholds() -> List[GradeThreshold]:
    return [
        GradeThreshold(grade="S", min_accuracy=95.0),
        GradeThreshold(grade="A", min_accuracy=90.0),
        GradeThreshold(grade="B", min_accuracy=80.0),
        GradeThreshold(grade="C", min_accuracy=70.0),
    ]


class ScoringConfig(BaseModel):
    hit_kinds: Dict[str, HitKindRule] = Field(default_factory=_default_hit_kind_rules)
    multiplier_step: int = Field(default=10, ge=1, description="Combo count per multiplier stair.")
    multiplier_base: float = Field(default=2.0, ge=1.0, description="Multiplier growth per stair.")
    max_multiplier: float = Field(default=8.0, ge=1.0)
    grade_thresholds: List[GradeThreshold] = Field(default_factory=_default_grade_thresholds)
    fallback_grade: str = Field(default="D")

    @field_validator("hit_kinds")
    @classmethod
    def fill_hit_kinds(cls, value: Dict[str, HitKindRule]) -> Dict[str, HitKindRule]:
        known = {kind.value for kind in HitKind}
        merged = _default_hit_kind_rules()
        for key, rule in value.items():
            normalized = str(key).strip().lower()
            if normalized not in known:
                raise ValueError(f"unknown hit kind {key!r}, expected one of: {', '.join(sorted(known))}")
            merged[normalized] = rule
        return merged

    @field_validator("grade_thresholds")
    @classmethod
    def validate_grade_order(cls, value: List[GradeThreshold]) -> List[GradeThreshold]:
        accuracies = [item.min_accuracy for item in value]
        if accuracies != sorted(accuracies, reverse=True):
            raise ValueError("grade_thresholds must be ordered from highest to lowest min_accuracy")
        return value

    def rule_for(self, kind: HitKind) -> HitKindRule:
        return self.hit_kinds[kind.value]


class EngineConfig(BaseModel):
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    judge: JudgeConfig = Field(default_factory=JudgeConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("Handbeat", "Handbeat"))
    return [
        Path.cwd() / "handbeat_config.json",
        config_directory / "handbeat_config.json",
        config_directory / "config.json",
    ]


def _resolve_config_path() -> Optional[Path]:
    explicit_path_text = os.environ.get("HANDBEAT_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path
    return None


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except OSError as exception:
        raise ConfigError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ConfigError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ConfigError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional. The config file is the primary source of truth.

    Override variables:
    - HANDBEAT_MIN_BPM
    - HANDBEAT_MAX_BPM
    - HANDBEAT_LEAD_TIME_MS
    - HANDBEAT_LAYOUT_SEED
    - HANDBEAT_PERFECT_MS
    - HANDBEAT_GOOD_MS
    - HANDBEAT_BAD_MS
    - HANDBEAT_LATE_WINDOW_MS
    """
    def ensure_nested(config_root: Dict[str, Any], section_name: str) -> Dict[str, Any]:
        section = config_root.get(section_name)
        if isinstance(section, dict):
            section = dict(section)
        else:
            section = {}
        config_root[section_name] = section
        return section

    updated_config = dict(config_dict)

    analysis_section = ensure_nested(updated_config, "analysis")
    scheduler_section = ensure_nested(updated_config, "scheduler")
    judge_section = ensure_nested(updated_config, "judge")

    def override_float(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = float(value_text)
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", env_name, value_text)

    def override_int(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = int(value_text)
        except ValueError:
            logger.warning("Ignoring non-integer %s=%r", env_name, value_text)

    override_float("HANDBEAT_MIN_BPM", analysis_section, "min_bpm")
    override_float("HANDBEAT_MAX_BPM", analysis_section, "max_bpm")

    override_float("HANDBEAT_LEAD_TIME_MS", scheduler_section, "lead_time_ms")
    override_int("HANDBEAT_LAYOUT_SEED", scheduler_section, "layout_seed")

    override_float("HANDBEAT_PERFECT_MS", judge_section, "perfect_ms")
    override_float("HANDBEAT_GOOD_MS", judge_section, "good_ms")
    override_float("HANDBEAT_BAD_MS", judge_section, "bad_ms")
    override_float("HANDBEAT_LATE_WINDOW_MS", judge_section, "late_window_ms")

    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[EngineConfig, Optional[Path]]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict: Dict[str, Any] = {}
    if resolved_path is not None:
        json_dict = _read_json_file_utf8(resolved_path)
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = EngineConfig.model_validate(json_dict)
    except ValidationError as exception:
        source_text = str(resolved_path) if resolved_path is not None else "(defaults)"
        raise ConfigError(f"Config validation failed for {source_text}:\n{exception}") from exception

    return config, resolved_path


@lru_cache(maxsize=1)
def get_config() -> Tuple[EngineConfig, Optional[Path]]:
    return load_config()


def to_json(config: EngineConfig) -> str:
    return json.dumps(config.model_dump(), ensure_ascii=False, indent=2)


def main() -> int:
    try:
        config, resolved_path = load_config()
    except ConfigError as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    output_payload = {
        "ok": True,
        "config_path": str(resolved_path) if resolved_path is not None else None,
        "config": json.loads(to_json(config)),
    }
    print(json.dumps(output_payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

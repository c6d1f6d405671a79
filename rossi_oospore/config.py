"""Configuration system for rossi_oospore.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → ad-hoc overrides

The biological thresholds of the Rossi model live in BiologySection so
that calibration work can adjust them without touching the algorithm.

References:
  - Rossi et al. 2008, Table 1 (threshold values)
"""

from __future__ import annotations

import dataclasses
import os
import warnings
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Simulation window and run control."""
    start_date: str = "2024-04-01"        # ISO date, inclusive
    end_date: str = "2024-06-30"          # ISO date, exclusive
    record_hourly: bool = False           # Keep hourly HT / cohort traces
    cohort_warning_threshold: int = 10000  # Warn once when cohort count exceeds this

    def window(self) -> tuple:
        """Parsed (start, end) dates."""
        return parse_date(self.start_date), parse_date(self.end_date)


@dataclass
class BiologySection:
    """Rossi model thresholds."""
    ht_min: float = 1.3                        # HT at which dormancy breaking starts
    ht_max: float = 8.6                        # HT at which dormancy breaking ends
    germination_complete: float = 1.0          # GER level marking completed germination
    sporangia_survival_threshold: float = 1.0  # SUS at/below which zoospores release
    rain_event_mm: float = 0.2                 # Hourly rain qualifying as an event (mm)
    infection_threshold: float = 60.0          # Wetness hours × mean T (°C·h)


@dataclass
class WeatherSection:
    """Weather source selection and synthetic-weather parameters.

    source: "constant" — fixed T/RH every hour, rain at rain_hours
            "diurnal"  — sinusoidal daily T/RH cycle, rain at rain_hours
            "csv"      — hourly observations from csv_path
    """
    source: str = "constant"
    csv_path: Optional[str] = None
    moist_rh_threshold: float = 90.0    # RH (%) at which litter counts as moist

    # Synthetic weather
    temperature: float = 15.0           # Mean temperature (°C)
    relative_humidity: float = 80.0     # Mean relative humidity (%)
    temperature_amplitude: float = 5.0  # Diurnal half-range (°C), diurnal only
    humidity_amplitude: float = 10.0    # Diurnal half-range (%), diurnal only
    leaf_litter_moist: Optional[bool] = True  # None = derive from rain/RH
    rain_hours: List[int] = field(default_factory=list)
    rain_mm: float = 0.5


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    biology: BiologySection = field(default_factory=BiologySection)
    weather: WeatherSection = field(default_factory=WeatherSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def parse_date(value: Union[str, date]) -> date:
    """Accept a date or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"invalid ISO date '{value}'") from exc


def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    section_map = {
        'simulation': SimulationSection,
        'biology': BiologySection,
        'weather': WeatherSection,
    }
    sections = {}
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    # YAML turns unquoted ISO dates into date objects
    sim = sections['simulation']
    sim.start_date = str(sim.start_date)
    sim.end_date = str(sim.end_date)
    return SimulationConfig(**sections)


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Simulation window parses and is non-empty
      - Dormancy window is ordered and thresholds are positive
      - Weather source is known and its parameters are usable
    """
    start, end = config.simulation.window()
    if end <= start:
        raise ValueError(
            f"end_date ({end}) must be after start_date ({start})"
        )
    if config.simulation.cohort_warning_threshold < 1:
        raise ValueError("simulation.cohort_warning_threshold must be >= 1")

    b = config.biology
    if b.ht_min < 0:
        raise ValueError(f"biology.ht_min must be >= 0, got {b.ht_min}")
    if b.ht_min > b.ht_max:
        raise ValueError(
            f"biology.ht_min ({b.ht_min}) must be <= ht_max ({b.ht_max})"
        )
    for name in ('germination_complete', 'sporangia_survival_threshold',
                 'rain_event_mm', 'infection_threshold'):
        if getattr(b, name) <= 0:
            raise ValueError(
                f"biology.{name} must be positive, got {getattr(b, name)}"
            )

    w = config.weather
    valid_sources = {"constant", "diurnal", "csv"}
    if w.source not in valid_sources:
        raise ValueError(
            f"weather.source must be one of {valid_sources}, got '{w.source}'"
        )
    if w.source == "csv":
        if not w.csv_path:
            raise ValueError("weather.csv_path required for 'csv' source")
        if not os.path.isfile(w.csv_path):
            warnings.warn(
                f"weather.csv_path '{w.csv_path}' does not exist. "
                f"Weather loading will fail at runtime.",
                UserWarning,
                stacklevel=2,
            )
    if not (0.0 <= w.moist_rh_threshold <= 100.0):
        raise ValueError(
            f"weather.moist_rh_threshold must be in [0, 100], "
            f"got {w.moist_rh_threshold}"
        )
    if not (0.0 <= w.relative_humidity <= 100.0):
        raise ValueError(
            f"weather.relative_humidity must be in [0, 100], "
            f"got {w.relative_humidity}"
        )
    if w.temperature_amplitude < 0 or w.humidity_amplitude < 0:
        raise ValueError("weather amplitudes must be non-negative")
    if w.rain_mm < 0:
        raise ValueError(f"weather.rain_mm must be >= 0, got {w.rain_mm}")
    if any(h < 0 for h in w.rain_hours):
        raise ValueError("weather.rain_hours must be non-negative hour indices")


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        overrides: Optional dict of parameter overrides (e.g. calibration).

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path or scenario_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config

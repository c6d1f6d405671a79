"""Core data types for rossi_oospore.

This module is the SINGLE SOURCE OF TRUTH for:
  - WeatherSeries / WeatherSample: hourly environmental forcing
  - OosporeCohort: one population of oospores tracked as a unit
  - CohortStage enumeration (derived from cohort fields, never stored)
  - SimulationState: the run state threaded through every hourly step
  - Error types raised by the rate functions and the engine

All modules import these types from here.

References:
  - Rossi et al. 2008, Ecological Modelling 212: 480–491
    (variable names in comments: GER, SUS, SUZ, REL, ZRE, ZDI, ZIN, OSL, DOR)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import IntEnum
from typing import List, Optional

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════

class WeatherDataError(ValueError):
    """Weather input cannot drive the requested run (length, shape, values)."""


class NumericDomainError(ArithmeticError):
    """A rate function hit a degenerate denominator or a non-finite result."""


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class CohortStage(IntEnum):
    """Life-cycle stage of an oospore cohort.

    SPAWNED      → GERMINATING: first hour with positive GER
    GERMINATING  → GERMINATED:  GER ≥ germination threshold
    GERMINATED   → RELEASED:    SUS ≤ survival threshold on a moist hour
    RELEASED     → INFECTED:    rain hour with SUS × T ≥ infection threshold
    """
    SPAWNED     = 0
    GERMINATING = 1
    GERMINATED  = 2
    RELEASED    = 3
    INFECTED    = 4


# ═══════════════════════════════════════════════════════════════════════
# WEATHER
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WeatherSample:
    """One hour of weather, as seen by every cohort during that hour."""
    temperature: float          # °C
    rainfall: float             # mm
    relative_humidity: float    # %
    is_leaf_litter_moist: bool


def _moisture_flags(values) -> np.ndarray:
    """Copy leaf-litter flags to a bool array.

    Numeric input must be exactly 0 or 1; NaN, inf and other numbers
    raise rather than collapse to True.
    """
    raw = np.asarray(values)
    if raw.dtype == bool:
        return raw.copy()
    try:
        numeric = raw.astype(np.float64)
    except (TypeError, ValueError) as exc:
        raise WeatherDataError(f"is_leaf_litter_moist is not boolean: {exc}") from exc
    bad = ~((numeric == 0.0) | (numeric == 1.0))
    if np.any(bad):
        i = int(np.flatnonzero(bad)[0])
        raise WeatherDataError(
            f"is_leaf_litter_moist must be 0/1, got {numeric.flat[i]} at hour {i}"
        )
    return numeric.astype(bool)


@dataclass(frozen=True, eq=False)
class WeatherSeries:
    """Hourly weather for a full simulated window.

    Index h denotes the same hour in all four series. Arrays are copied
    on construction and made read-only, so the engine can never write
    back into caller data. Leaf-litter flags may be bool or 0/1 numbers.

    Raises:
        WeatherDataError: If the series differ in length, are not 1-D,
            contain non-finite values, or carry a leaf-litter flag other
            than 0/1.
    """
    temperature: np.ndarray
    rainfall: np.ndarray
    relative_humidity: np.ndarray
    is_leaf_litter_moist: np.ndarray
    start: Optional[date] = None    # calendar date of index 0, if known

    def __post_init__(self):
        arrays = {
            'temperature': np.array(self.temperature, dtype=np.float64),
            'rainfall': np.array(self.rainfall, dtype=np.float64),
            'relative_humidity': np.array(self.relative_humidity, dtype=np.float64),
            'is_leaf_litter_moist': _moisture_flags(self.is_leaf_litter_moist),
        }
        lengths = {name: arr.shape for name, arr in arrays.items()}
        for name, arr in arrays.items():
            if arr.ndim != 1:
                raise WeatherDataError(
                    f"{name} must be 1-D, got shape {arr.shape}"
                )
        if len({arr.shape[0] for arr in arrays.values()}) != 1:
            raise WeatherDataError(
                f"weather series must have equal length, got {lengths}"
            )
        for name in ('temperature', 'rainfall', 'relative_humidity'):
            if not np.all(np.isfinite(arrays[name])):
                bad = int(np.flatnonzero(~np.isfinite(arrays[name]))[0])
                raise WeatherDataError(
                    f"{name} contains a non-finite value at hour {bad}"
                )
        for name, arr in arrays.items():
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def num_hours(self) -> int:
        return int(self.temperature.shape[0])

    def __len__(self) -> int:
        return self.num_hours

    def sample(self, hour: int) -> WeatherSample:
        """Return the four observations for one hour index."""
        return WeatherSample(
            temperature=float(self.temperature[hour]),
            rainfall=float(self.rainfall[hour]),
            relative_humidity=float(self.relative_humidity[hour]),
            is_leaf_litter_moist=bool(self.is_leaf_litter_moist[hour]),
        )

    def window(self, first_hour: int, n_hours: int,
               start: Optional[date] = None) -> 'WeatherSeries':
        """Sub-series of n_hours beginning at first_hour."""
        if n_hours <= 0:
            raise WeatherDataError(f"window needs at least one hour, got {n_hours}")
        if first_hour < 0 or first_hour + n_hours > self.num_hours:
            raise WeatherDataError(
                f"window [{first_hour}, {first_hour + n_hours}) exceeds "
                f"series of {self.num_hours} hours"
            )
        stop = first_hour + n_hours
        return WeatherSeries(
            temperature=self.temperature[first_hour:stop],
            rainfall=self.rainfall[first_hour:stop],
            relative_humidity=self.relative_humidity[first_hour:stop],
            is_leaf_litter_moist=self.is_leaf_litter_moist[first_hour:stop],
            start=start,
        )


# ═══════════════════════════════════════════════════════════════════════
# COHORTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class OosporeCohort:
    """Oospores that broke dormancy together on one rain event.

    Created once by the engine and never removed. Boolean flags only
    ever go False → True. dormancy_breaking_progress is fixed at the
    spawning hour and not updated afterwards.
    """
    germination_start_hour: int                 # hour index of spawning
    dormancy_breaking_progress: float           # DOR at spawn
    germination_level: float = 0.0              # GER
    sporangia_survival: float = 0.0             # SUS
    zoospore_survival: float = 0.0              # SUZ (not consumed by any transition)
    zoospores_released: bool = False            # REL
    zoospore_release_ratio: float = 0.0         # ZRE
    zoospore_dispersal_ratio: float = 0.0       # ZDI
    zoospore_infection_ratio: float = 0.0       # ZIN
    oil_spots_on_leaves: bool = False           # OSL

    # Bookkeeping for SUZ and reporting
    release_hour: Optional[int] = None
    wet_hours_since_release: int = 0
    infection_hour: Optional[int] = None

    @property
    def stage(self) -> CohortStage:
        if self.oil_spots_on_leaves:
            return CohortStage.INFECTED
        if self.zoospores_released:
            return CohortStage.RELEASED
        if self.sporangia_survival > 0.0:
            return CohortStage.GERMINATED
        if self.germination_level > 0.0:
            return CohortStage.GERMINATING
        return CohortStage.SPAWNED


@dataclass
class SimulationState:
    """Run state threaded through each hourly step.

    hydro_thermal_time is the shared HT clock: never reset, never
    decreasing. cohorts is append-only, in creation order.
    """
    hour: int = 0
    hydro_thermal_time: float = 0.0
    cohorts: List[OosporeCohort] = field(default_factory=list)

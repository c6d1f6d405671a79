"""Hourly simulation engine for the Rossi oospore model.

Each hour, in this order:
  1. Advance the shared hydro-thermal clock (HT)
  2. Spawn a cohort if HT lies in [ht_min, ht_max] and the hour has a
     rain event; its DOR is frozen at the spawning clock value
  3. Advance every cohort, in creation order, with the hour's weather:
       GER accumulates HT increments until germination completes
       SUS accumulates once germinated
       REL / ZRE on the first moist hour with SUS ≤ threshold
       SUZ from hours since release over wet hours since release
       ZDI / ZIN / OSL on rain hours after release

Cohorts never interact, so step 3 depends only on the shared hour and
each cohort's own prior state. Runs are deterministic.

References:
  - Rossi et al. 2008, Ecological Modelling 212: 480–491, Fig. 1
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Union

import numpy as np

from rossi_oospore.config import BiologySection, SimulationConfig, default_config, parse_date
from rossi_oospore.environment import hours_between
from rossi_oospore.perf import PerfMonitor
from rossi_oospore.rates import (
    dormancy_breaking_fraction,
    hydro_thermal_increment,
    is_infection_threshold_met,
    sporangia_survival_rate,
    zoospore_survival_fraction,
)
from rossi_oospore.types import (
    OosporeCohort,
    SimulationState,
    WeatherDataError,
    WeatherSample,
    WeatherSeries,
)


# ═══════════════════════════════════════════════════════════════════════
# COHORT STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════

_NO_PERF = PerfMonitor(enabled=False)


def in_dormancy_window(hydro_thermal_time: float, bio: BiologySection) -> bool:
    """Whether HT lies in the dormancy-breaking window (bounds inclusive)."""
    return bio.ht_min <= hydro_thermal_time <= bio.ht_max


def spawn_cohort(state: SimulationState, sample: WeatherSample,
                 bio: BiologySection) -> Optional[OosporeCohort]:
    """Append a new cohort if this hour qualifies; return it, else None."""
    if not in_dormancy_window(state.hydro_thermal_time, bio):
        return None
    if sample.rainfall < bio.rain_event_mm:
        return None
    cohort = OosporeCohort(
        germination_start_hour=state.hour,
        dormancy_breaking_progress=dormancy_breaking_fraction(state.hydro_thermal_time),
    )
    state.cohorts.append(cohort)
    return cohort


def advance_cohort(cohort: OosporeCohort, sample: WeatherSample, hour: int,
                   bio: BiologySection) -> OosporeCohort:
    """Advance one cohort through one hour. Mutates and returns the cohort.

    Raises:
        NumericDomainError: If a survival rate is degenerate for this hour.
    """
    T = sample.temperature
    moist = sample.is_leaf_litter_moist

    # Germination
    if cohort.germination_level < bio.germination_complete:
        cohort.germination_level += hydro_thermal_increment(T, moist)

    # Sporangia survival and zoospore release
    if cohort.germination_level >= bio.germination_complete:
        cohort.sporangia_survival += sporangia_survival_rate(T, sample.relative_humidity)
        if cohort.sporangia_survival <= bio.sporangia_survival_threshold and moist:
            if not cohort.zoospores_released:
                cohort.release_hour = hour
            cohort.zoospores_released = True
            cohort.zoospore_release_ratio = cohort.germination_level

    if not cohort.zoospores_released:
        return cohort

    # Zoospore survival
    if moist:
        cohort.wet_hours_since_release += 1
    if cohort.wet_hours_since_release > 0:
        cohort.zoospore_survival = zoospore_survival_fraction(
            hour - cohort.release_hour, cohort.wet_hours_since_release
        )

    # Dispersal and infection
    if sample.rainfall >= bio.rain_event_mm:
        cohort.zoospore_dispersal_ratio = cohort.zoospore_release_ratio
        if is_infection_threshold_met(cohort.sporangia_survival, T,
                                      bio.infection_threshold):
            if not cohort.oil_spots_on_leaves:
                cohort.infection_hour = hour
            cohort.oil_spots_on_leaves = True
            cohort.zoospore_infection_ratio = cohort.zoospore_dispersal_ratio
    return cohort


def hourly_step(state: SimulationState, sample: WeatherSample,
                bio: BiologySection,
                perf: Optional[PerfMonitor] = None) -> SimulationState:
    """Run one hour: clock → spawn → cohorts. Mutates and returns state."""
    perf = perf or _NO_PERF
    with perf.track("clock"):
        state.hydro_thermal_time += hydro_thermal_increment(
            sample.temperature, sample.is_leaf_litter_moist
        )
    with perf.track("spawn"):
        spawn_cohort(state, sample, bio)
    with perf.track("cohorts"):
        for cohort in state.cohorts:
            advance_cohort(cohort, sample, state.hour, bio)
    state.hour += 1
    return state


# ═══════════════════════════════════════════════════════════════════════
# RUNS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationResult:
    """Results from one run over [start_date, end_date)."""
    cohorts: List[OosporeCohort]
    start_date: date
    end_date: date
    n_hours: int
    final_hydro_thermal_time: float

    # Hourly traces (length n_hours), only with record_hourly
    hourly_hydro_thermal_time: Optional[np.ndarray] = None
    hourly_n_cohorts: Optional[np.ndarray] = None
    hourly_n_released: Optional[np.ndarray] = None
    hourly_n_infected: Optional[np.ndarray] = None


def validate_inputs(weather: WeatherSeries, start_date: date, end_date: date) -> int:
    """Check the date range and weather coverage; return the hour count.

    Raises:
        ValueError: If end_date is not after start_date.
        WeatherDataError: If weather has fewer hours than the window needs.
    """
    if end_date <= start_date:
        raise ValueError(
            f"end_date ({end_date}) must be after start_date ({start_date})"
        )
    n_hours = hours_between(start_date, end_date)
    if weather.num_hours < n_hours:
        raise WeatherDataError(
            f"window {start_date}..{end_date} needs {n_hours} hourly samples, "
            f"weather has {weather.num_hours}"
        )
    return n_hours


def run_model(
    weather: WeatherSeries,
    start_date: Union[str, date],
    end_date: Union[str, date],
    config: Optional[SimulationConfig] = None,
    record_hourly: Optional[bool] = None,
    perf: Optional[PerfMonitor] = None,
) -> SimulationResult:
    """Run the Rossi model over [start_date, end_date).

    Weather index 0 is the first hour of start_date. Only the first
    24 × days samples are read.

    Args:
        weather: Hourly weather covering at least the window.
        start_date: First simulated day (date or ISO string).
        end_date: Day after the last simulated day.
        config: Optional SimulationConfig; uses default if None.
        record_hourly: Record hourly traces; defaults to
            config.simulation.record_hourly.
        perf: Optional PerfMonitor for phase timing.

    Returns:
        SimulationResult with every cohort in creation order.

    Raises:
        ValueError: Invalid date range.
        WeatherDataError: Insufficient weather, before any step runs.
        NumericDomainError: Degenerate survival rate during the run.
    """
    if config is None:
        config = default_config()
    start_date = parse_date(start_date)
    end_date = parse_date(end_date)
    n_hours = validate_inputs(weather, start_date, end_date)
    if record_hourly is None:
        record_hourly = config.simulation.record_hourly

    bio = config.biology
    warn_at = config.simulation.cohort_warning_threshold
    warned = False

    if record_hourly:
        hourly_ht = np.zeros(n_hours, dtype=np.float64)
        hourly_n = np.zeros(n_hours, dtype=np.int64)
        hourly_rel = np.zeros(n_hours, dtype=np.int64)
        hourly_inf = np.zeros(n_hours, dtype=np.int64)
    else:
        hourly_ht = hourly_n = hourly_rel = hourly_inf = None

    state = SimulationState()
    for hour in range(n_hours):
        hourly_step(state, weather.sample(hour), bio, perf)

        if not warned and len(state.cohorts) > warn_at:
            warnings.warn(
                f"{len(state.cohorts)} cohorts by hour {hour}; cohorts are "
                f"never pruned, memory grows with every rain event",
                UserWarning,
                stacklevel=2,
            )
            warned = True

        if record_hourly:
            hourly_ht[hour] = state.hydro_thermal_time
            hourly_n[hour] = len(state.cohorts)
            hourly_rel[hour] = sum(c.zoospores_released for c in state.cohorts)
            hourly_inf[hour] = sum(c.oil_spots_on_leaves for c in state.cohorts)

    return SimulationResult(
        cohorts=state.cohorts,
        start_date=start_date,
        end_date=end_date,
        n_hours=n_hours,
        final_hydro_thermal_time=state.hydro_thermal_time,
        hourly_hydro_thermal_time=hourly_ht,
        hourly_n_cohorts=hourly_n,
        hourly_n_released=hourly_rel,
        hourly_n_infected=hourly_inf,
    )


def run_simulation(
    weather: WeatherSeries,
    start_date: Union[str, date],
    end_date: Union[str, date],
    config: Optional[SimulationConfig] = None,
) -> List[OosporeCohort]:
    """Run the model and return only the cohorts, in creation order."""
    return run_model(weather, start_date, end_date, config,
                     record_hourly=False).cohorts

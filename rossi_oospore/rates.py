"""Biological rate functions of the Rossi primary-infection model.

Pure, stateless functions evaluated once per hour by the engine:
  - Hydro-thermal time increment (HT), used both for the shared
    dormancy clock and for per-cohort germination (GER)
  - Dormancy-breaking fraction (DOR) as a Weibull-type curve of HT
  - Sporangia survival rate (SUS)
  - Zoospore survival fraction (SUZ)
  - Infection threshold test (OSL)

Degenerate denominators raise NumericDomainError instead of letting
inf/NaN reach cohort state.

References:
  - Rossi et al. 2008, Ecological Modelling 212: 480–491, Eqs. 1–7
"""

from __future__ import annotations

import math

import numpy as np

from rossi_oospore.types import NumericDomainError, WeatherSeries


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

HT_MIN = 1.3                        # HT at which dormancy breaking begins
HT_MAX = 8.6                        # HT at which dormancy breaking ends
GERMINATION_COMPLETE = 1.0          # GER marking completed germination
SPORANGIA_SURVIVAL_THRESHOLD = 1.0  # SUS at/below which zoospores release
RAIN_EVENT_MM = 0.2                 # mm/h qualifying as a rain event
INFECTION_THRESHOLD = 60.0          # wetness hours × mean T (°C·h)

# HT increment denominator: 1330.1 − 116.19·T + 2.6256·T²
_HT_A = 1330.1
_HT_B = 116.19
_HT_C = 2.6256

# DOR = exp(−15.891 · exp(−0.653 · (HT + 1)))
_DOR_SCALE = 15.891
_DOR_RATE = 0.653


# ═══════════════════════════════════════════════════════════════════════
# HYDRO-THERMAL TIME
# ═══════════════════════════════════════════════════════════════════════

def hydro_thermal_increment(temperature: float, is_leaf_litter_moist: bool) -> float:
    """Hourly hydro-thermal time increment.

    HT_h = wet_h / (1330.1 − 116.19·T + 2.6256·T²)   for T > 0
    HT_h = 0                                          for T ≤ 0

    Leaf-litter wetness gates the rate: 1 when moist, 0 when dry.

    Args:
        temperature: Air temperature (°C).
        is_leaf_litter_moist: Whether the leaf litter is wet this hour.

    Returns:
        HT increment for one hour (≥ 0).
    """
    if not temperature > 0.0:
        return 0.0
    wetness = 1.0 if is_leaf_litter_moist else 0.0
    denominator = _HT_A - _HT_B * temperature + _HT_C * temperature * temperature
    return wetness / denominator


def hydro_thermal_increments(temperature: np.ndarray,
                             is_leaf_litter_moist: np.ndarray) -> np.ndarray:
    """Vectorized hydro_thermal_increment over hourly arrays."""
    T = np.asarray(temperature, dtype=np.float64)
    wetness = np.where(np.asarray(is_leaf_litter_moist, dtype=bool), 1.0, 0.0)
    denominator = _HT_A - _HT_B * T + _HT_C * T * T
    return np.where(T > 0.0, wetness / denominator, 0.0)


def cumulative_hydro_thermal_time(weather: WeatherSeries) -> np.ndarray:
    """HT clock value at the end of every hour of a weather series.

    Element h equals the clock the engine holds when it checks the
    dormancy window at hour h.
    """
    return np.cumsum(
        hydro_thermal_increments(weather.temperature, weather.is_leaf_litter_moist)
    )


# ═══════════════════════════════════════════════════════════════════════
# DORMANCY BREAKING
# ═══════════════════════════════════════════════════════════════════════

def dormancy_breaking_fraction(hydro_thermal_time: float) -> float:
    """Fraction of the oospore population that has broken dormancy (DOR).

    DOR = exp(−15.891 · exp(−0.653 · (HT + 1)))

    Non-decreasing in HT and, for HT ≥ 0, within (0, 1]; the result
    rounds to exactly 1.0 once HT is around 60. Large negative HT
    overflows math.exp, and the engine's clock never goes negative.
    """
    return math.exp(-_DOR_SCALE * math.exp(-_DOR_RATE * (hydro_thermal_time + 1.0)))


# ═══════════════════════════════════════════════════════════════════════
# SPORANGIA & ZOOSPORE SURVIVAL
# ═══════════════════════════════════════════════════════════════════════

def sporangia_survival_rate(temperature: float, relative_humidity: float) -> float:
    """Hourly increment of sporangia survival pressure (SUS).

    SUS_h = 1 / (24 · (5.67 − 0.47·T·(1 − RH/100) + 0.01·T·(1 − RH/100)²))

    Raises:
        NumericDomainError: If the denominator is zero or negative (hot,
            dry conditions drive it through zero) or the result is not finite.
    """
    dryness = 1.0 - relative_humidity / 100.0
    denominator = 24.0 * (
        5.67 - 0.47 * temperature * dryness + 0.01 * temperature * dryness ** 2
    )
    if not denominator > 0.0:
        raise NumericDomainError(
            f"sporangia survival denominator {denominator!r} is not positive "
            f"at T={temperature}°C, RH={relative_humidity}%"
        )
    rate = 1.0 / denominator
    if not math.isfinite(rate):
        raise NumericDomainError(
            f"sporangia survival rate is not finite at T={temperature}°C, "
            f"RH={relative_humidity}%"
        )
    return rate


def zoospore_survival_fraction(hours_after_release: float, wet_hours: float) -> float:
    """Zoospore survival (SUZ) = hours after release / wet hours.

    Raises:
        NumericDomainError: If wet_hours is zero.
    """
    if wet_hours == 0:
        raise NumericDomainError("zoospore survival needs wet_hours != 0")
    result = hours_after_release / wet_hours
    if not math.isfinite(result):
        raise NumericDomainError(
            f"zoospore survival is not finite ({hours_after_release}/{wet_hours})"
        )
    return result


# ═══════════════════════════════════════════════════════════════════════
# INFECTION
# ═══════════════════════════════════════════════════════════════════════

def is_infection_threshold_met(
    wetness_duration_hours: float,
    mean_temperature_over_wetness: float,
    threshold: float = INFECTION_THRESHOLD,
) -> bool:
    """Infection occurs when wetness duration × mean temperature ≥ threshold."""
    return wetness_duration_hours * mean_temperature_over_wetness >= threshold

"""Environmental forcing module.

Provides hourly WeatherSeries for the engine:
  - Constant weather (fixed T / RH, rain pulses at chosen hours)
  - Diurnal weather: sinusoidal daily cycle of temperature with
    relative humidity in anti-phase (peak T mid-afternoon)
  - Hourly observations loaded from CSV
  - Leaf-litter moisture derived from rain and humidity when a source
    has no wetness column

Leaf litter is taken as moist in any hour with a rain event or with
RH at or above a humidity threshold (default 90 %).
"""

from __future__ import annotations

import csv
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import numpy as np

from rossi_oospore.config import SimulationConfig, parse_date
from rossi_oospore.rates import RAIN_EVENT_MM
from rossi_oospore.types import WeatherDataError, WeatherSeries


HOURS_PER_DAY = 24

# Hour of day at which the diurnal temperature cycle peaks
_T_PEAK_HOUR = 15

_TRUE_STRINGS = {'1', 'true', 't', 'yes', 'y'}
_FALSE_STRINGS = {'0', 'false', 'f', 'no', 'n', ''}


def hours_between(start_date: date, end_date: date) -> int:
    """Hours in the window [start_date, end_date)."""
    return HOURS_PER_DAY * (end_date - start_date).days


# ═══════════════════════════════════════════════════════════════════════
# LEAF-LITTER MOISTURE
# ═══════════════════════════════════════════════════════════════════════

def derive_leaf_litter_moisture(rainfall: np.ndarray,
                                relative_humidity: np.ndarray,
                                rh_threshold: float = 90.0,
                                rain_event_mm: float = RAIN_EVENT_MM) -> np.ndarray:
    """Boolean wetness per hour: rain event or RH ≥ rh_threshold."""
    rain = np.asarray(rainfall, dtype=np.float64)
    rh = np.asarray(relative_humidity, dtype=np.float64)
    return (rain >= rain_event_mm) | (rh >= rh_threshold)


def _rain_pulses(n_hours: int, rain_hours: Iterable[int], rain_mm: float) -> np.ndarray:
    rainfall = np.zeros(n_hours, dtype=np.float64)
    for h in rain_hours:
        if 0 <= h < n_hours:
            rainfall[h] = rain_mm
    return rainfall


# ═══════════════════════════════════════════════════════════════════════
# SYNTHETIC WEATHER
# ═══════════════════════════════════════════════════════════════════════

def constant_weather(n_hours: int,
                     temperature: float = 15.0,
                     relative_humidity: float = 80.0,
                     leaf_litter_moist: Optional[bool] = True,
                     rain_hours: Sequence[int] = (),
                     rain_mm: float = 0.5,
                     moist_rh_threshold: float = 90.0,
                     start: Optional[date] = None) -> WeatherSeries:
    """Fixed temperature and humidity every hour, rain only at rain_hours.

    Args:
        n_hours: Series length.
        temperature: Air temperature (°C).
        relative_humidity: Relative humidity (%).
        leaf_litter_moist: Wetness every hour; None derives it from rain/RH.
        rain_hours: Hour indices receiving rain_mm of rain.
        rain_mm: Rain per pulse (mm).
        moist_rh_threshold: RH threshold used when deriving wetness.
        start: Calendar date of hour 0.
    """
    rainfall = _rain_pulses(n_hours, rain_hours, rain_mm)
    rh = np.full(n_hours, relative_humidity, dtype=np.float64)
    if leaf_litter_moist is None:
        moist = derive_leaf_litter_moisture(rainfall, rh, moist_rh_threshold)
    else:
        moist = np.full(n_hours, bool(leaf_litter_moist))
    return WeatherSeries(
        temperature=np.full(n_hours, temperature, dtype=np.float64),
        rainfall=rainfall,
        relative_humidity=rh,
        is_leaf_litter_moist=moist,
        start=start,
    )


def diurnal_weather(n_hours: int,
                    mean_temperature: float = 15.0,
                    temperature_amplitude: float = 5.0,
                    mean_humidity: float = 80.0,
                    humidity_amplitude: float = 10.0,
                    leaf_litter_moist: Optional[bool] = None,
                    rain_hours: Sequence[int] = (),
                    rain_mm: float = 0.5,
                    moist_rh_threshold: float = 90.0,
                    start: Optional[date] = None) -> WeatherSeries:
    """Sinusoidal daily cycle.

    T(h)  = T_mean + A_T × cos(2π × (h mod 24 − 15) / 24)
    RH(h) = clip(RH_mean − A_RH × cos(2π × (h mod 24 − 15) / 24), 0, 100)

    Humidity is lowest when temperature peaks (15:00).
    """
    hour_of_day = np.arange(n_hours) % HOURS_PER_DAY
    phase = np.cos(2.0 * np.pi * (hour_of_day - _T_PEAK_HOUR) / HOURS_PER_DAY)
    temperature = mean_temperature + temperature_amplitude * phase
    rh = np.clip(mean_humidity - humidity_amplitude * phase, 0.0, 100.0)
    rainfall = _rain_pulses(n_hours, rain_hours, rain_mm)
    if leaf_litter_moist is None:
        moist = derive_leaf_litter_moisture(rainfall, rh, moist_rh_threshold)
    else:
        moist = np.full(n_hours, bool(leaf_litter_moist))
    return WeatherSeries(
        temperature=temperature,
        rainfall=rainfall,
        relative_humidity=rh,
        is_leaf_litter_moist=moist,
        start=start,
    )


# ═══════════════════════════════════════════════════════════════════════
# CSV OBSERVATIONS
# ═══════════════════════════════════════════════════════════════════════

def _parse_flag(raw: str, line: int) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    raise WeatherDataError(f"line {line}: cannot read leaf_litter_moist '{raw}'")


def load_weather_csv(path: Union[str, Path],
                     moist_rh_threshold: float = 90.0,
                     rain_event_mm: float = RAIN_EVENT_MM) -> WeatherSeries:
    """Load hourly weather from a CSV file.

    Required columns: temperature, rainfall, relative_humidity.
    Optional columns:
      - leaf_litter_moist (1/0, true/false, yes/no); derived from rain
        and RH when absent
      - timestamp (ISO datetime or date); the first row sets series start

    Raises:
        FileNotFoundError: If path doesn't exist.
        WeatherDataError: On missing columns, unparseable values or no rows.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Weather file not found: {path}")

    temperature, rainfall, rh, moist = [], [], [], []
    start = None
    with open(path, newline='') as f:
        reader = csv.DictReader(f)
        columns = set(reader.fieldnames or [])
        missing = {'temperature', 'rainfall', 'relative_humidity'} - columns
        if missing:
            raise WeatherDataError(
                f"{path.name}: missing columns {sorted(missing)}"
            )
        has_moist = 'leaf_litter_moist' in columns
        for line, row in enumerate(reader, start=2):
            try:
                temperature.append(float(row['temperature']))
                rainfall.append(float(row['rainfall']))
                rh.append(float(row['relative_humidity']))
            except (TypeError, ValueError) as exc:
                raise WeatherDataError(f"{path.name} line {line}: {exc}") from exc
            if has_moist:
                moist.append(_parse_flag(row['leaf_litter_moist'] or '', line))
            if start is None and row.get('timestamp'):
                try:
                    start = datetime.fromisoformat(row['timestamp'].strip()).date()
                except ValueError as exc:
                    raise WeatherDataError(f"{path.name} line {line}: {exc}") from exc

    if not temperature:
        raise WeatherDataError(f"{path.name}: no weather rows")

    if not has_moist:
        moist = derive_leaf_litter_moisture(rainfall, rh, moist_rh_threshold,
                                            rain_event_mm)
    return WeatherSeries(
        temperature=np.array(temperature),
        rainfall=np.array(rainfall),
        relative_humidity=np.array(rh),
        is_leaf_litter_moist=np.array(moist, dtype=bool),
        start=start,
    )


# ═══════════════════════════════════════════════════════════════════════
# WINDOWING & CONFIG DISPATCH
# ═══════════════════════════════════════════════════════════════════════

def slice_weather(weather: WeatherSeries,
                  start_date: Union[str, date],
                  end_date: Union[str, date]) -> WeatherSeries:
    """Cut a dated series down to the window [start_date, end_date).

    Raises:
        WeatherDataError: If the series has no start date or does not
            cover the window.
    """
    start_date = parse_date(start_date)
    end_date = parse_date(end_date)
    if weather.start is None:
        raise WeatherDataError("weather series has no start date to align on")
    offset = hours_between(weather.start, start_date)
    if offset < 0:
        raise WeatherDataError(
            f"weather starts {weather.start}, after simulation start {start_date}"
        )
    return weather.window(offset, hours_between(start_date, end_date),
                          start=start_date)


def weather_from_config(config: SimulationConfig) -> WeatherSeries:
    """Build the WeatherSeries a config asks for, covering its window."""
    start, end = config.simulation.window()
    n_hours = hours_between(start, end)
    w = config.weather
    if w.source == 'csv':
        weather = load_weather_csv(w.csv_path, w.moist_rh_threshold,
                                   config.biology.rain_event_mm)
        if weather.start is not None:
            return slice_weather(weather, start, end)
        return weather
    if w.source == 'diurnal':
        return diurnal_weather(
            n_hours,
            mean_temperature=w.temperature,
            temperature_amplitude=w.temperature_amplitude,
            mean_humidity=w.relative_humidity,
            humidity_amplitude=w.humidity_amplitude,
            leaf_litter_moist=w.leaf_litter_moist,
            rain_hours=w.rain_hours,
            rain_mm=w.rain_mm,
            moist_rh_threshold=w.moist_rh_threshold,
            start=start,
        )
    if w.source == 'constant':
        return constant_weather(
            n_hours,
            temperature=w.temperature,
            relative_humidity=w.relative_humidity,
            leaf_litter_moist=w.leaf_litter_moist,
            rain_hours=w.rain_hours,
            rain_mm=w.rain_mm,
            moist_rh_threshold=w.moist_rh_threshold,
            start=start,
        )
    raise ValueError(f"unknown weather source '{w.source}'")

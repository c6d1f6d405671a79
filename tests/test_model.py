"""Tests for rossi_oospore.model — hourly engine and cohort state machine.

Reference weather for hand-checked numbers: 15 °C, 80 % RH, litter moist.
  HT increment   = 1 / 178.01          ≈ 0.0056177 per hour
  SUS increment  = 1 / (24 × 4.266)    ≈ 0.0097671 per hour
  Germination completes on a cohort's 179th hour (179 / 178.01 ≥ 1).
  Infection needs SUS ≥ 60 / 15 = 4, i.e. ≥ 410 hours of SUS.
"""

from dataclasses import asdict
from datetime import date, timedelta

import numpy as np
import pytest

from rossi_oospore.config import BiologySection, default_config
from rossi_oospore.environment import constant_weather, diurnal_weather
from rossi_oospore.model import (
    SimulationResult,
    advance_cohort,
    hourly_step,
    in_dormancy_window,
    run_model,
    run_simulation,
    spawn_cohort,
    validate_inputs,
)
from rossi_oospore.perf import PerfMonitor
from rossi_oospore.rates import cumulative_hydro_thermal_time
from rossi_oospore.types import (
    CohortStage,
    NumericDomainError,
    OosporeCohort,
    SimulationState,
    WeatherDataError,
    WeatherSample,
    WeatherSeries,
)


START = date(2024, 4, 1)
HT_PER_HOUR = 1.0 / 178.01


def _window(days):
    return START, START + timedelta(days=days)


def _sample(T=15.0, rain=0.0, rh=80.0, moist=True):
    return WeatherSample(temperature=T, rainfall=rain,
                         relative_humidity=rh, is_leaf_litter_moist=moist)


# ═══════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════

@pytest.fixture
def bio() -> BiologySection:
    return BiologySection()


@pytest.fixture
def three_rains():
    """50 days, rain at hours 300, 600 and 1000, always moist."""
    return constant_weather(24 * 50, temperature=15.0, relative_humidity=80.0,
                            rain_hours=[300, 600, 1000], rain_mm=0.5)


# ═══════════════════════════════════════════════════════════════════════
# INPUT VALIDATION
# ═══════════════════════════════════════════════════════════════════════

class TestValidateInputs:
    def test_hour_count(self):
        weather = constant_weather(48)
        assert validate_inputs(weather, *_window(2)) == 48

    def test_end_before_start(self):
        weather = constant_weather(48)
        with pytest.raises(ValueError, match="must be after"):
            validate_inputs(weather, START, START - timedelta(days=1))

    def test_zero_day_window(self):
        weather = constant_weather(48)
        with pytest.raises(ValueError):
            run_simulation(weather, START, START)

    def test_short_weather(self):
        weather = constant_weather(47)
        with pytest.raises(WeatherDataError, match="needs 48"):
            run_simulation(weather, *_window(2))

    def test_longer_weather_is_fine(self):
        weather = constant_weather(100)
        result = run_model(weather, *_window(2))
        assert result.n_hours == 48

    def test_unequal_series_rejected_before_run(self):
        with pytest.raises(WeatherDataError):
            WeatherSeries(
                temperature=np.full(48, 15.0),
                rainfall=np.zeros(48),
                relative_humidity=np.full(47, 80.0),
                is_leaf_litter_moist=np.ones(48, dtype=bool),
            )

    def test_iso_string_dates(self):
        weather = constant_weather(48)
        result = run_model(weather, "2024-04-01", "2024-04-03")
        assert result.start_date == date(2024, 4, 1)
        assert result.n_hours == 48


# ═══════════════════════════════════════════════════════════════════════
# SPAWNING
# ═══════════════════════════════════════════════════════════════════════

class TestSpawn:
    def test_inclusive_window(self, bio):
        assert in_dormancy_window(1.3, bio)
        assert in_dormancy_window(8.6, bio)
        assert not in_dormancy_window(1.3 - 1e-9, bio)
        assert not in_dormancy_window(8.6 + 1e-9, bio)

    @pytest.mark.parametrize("clock", [1.3, 8.6])
    def test_spawns_exactly_on_bounds(self, bio, clock):
        # T ≤ 0 keeps the clock where it is for this hour
        state = SimulationState(hour=7, hydro_thermal_time=clock)
        hourly_step(state, _sample(T=0.0, rain=0.5), bio)
        assert len(state.cohorts) == 1
        assert state.cohorts[0].germination_start_hour == 7

    @pytest.mark.parametrize("clock", [0.0, 1.2999, 8.6001, 20.0])
    def test_no_spawn_outside_window_even_with_rain(self, bio, clock):
        state = SimulationState(hydro_thermal_time=clock)
        hourly_step(state, _sample(T=0.0, rain=5.0), bio)
        assert state.cohorts == []

    def test_rain_threshold_inclusive(self, bio):
        state = SimulationState(hydro_thermal_time=2.0)
        assert spawn_cohort(state, _sample(rain=0.2), bio) is not None
        assert spawn_cohort(state, _sample(rain=0.19), bio) is None
        assert len(state.cohorts) == 1

    def test_dormancy_progress_frozen_at_spawn(self, bio):
        from rossi_oospore.rates import dormancy_breaking_fraction
        state = SimulationState(hydro_thermal_time=2.0)
        cohort = spawn_cohort(state, _sample(rain=1.0), bio)
        assert cohort.dormancy_breaking_progress == dormancy_breaking_fraction(2.0)
        for _ in range(100):
            hourly_step(state, _sample(), bio)
        assert cohort.dormancy_breaking_progress == dormancy_breaking_fraction(2.0)

    def test_new_cohort_starts_empty(self, bio):
        state = SimulationState(hydro_thermal_time=2.0)
        cohort = spawn_cohort(state, _sample(rain=1.0), bio)
        assert cohort.germination_level == 0.0
        assert cohort.sporangia_survival == 0.0
        assert cohort.zoospore_release_ratio == 0.0
        assert not cohort.zoospores_released
        assert not cohort.oil_spots_on_leaves


# ═══════════════════════════════════════════════════════════════════════
# HOURLY STEP ORDER
# ═══════════════════════════════════════════════════════════════════════

class TestHourlyStep:
    def test_clock_advances_before_spawn_check(self, bio):
        # Clock just below ht_min; this hour's increment lifts it into the window
        state = SimulationState(hydro_thermal_time=1.3 - HT_PER_HOUR / 2)
        hourly_step(state, _sample(rain=1.0), bio)
        assert len(state.cohorts) == 1

    def test_new_cohort_advanced_in_spawn_hour(self, bio):
        state = SimulationState(hydro_thermal_time=2.0)
        hourly_step(state, _sample(rain=1.0), bio)
        assert state.cohorts[0].germination_level == pytest.approx(HT_PER_HOUR)

    def test_hour_counter(self, bio):
        state = SimulationState()
        for _ in range(5):
            hourly_step(state, _sample(), bio)
        assert state.hour == 5

    def test_cohorts_see_same_weather(self, bio):
        state = SimulationState(hydro_thermal_time=2.0)
        hourly_step(state, _sample(rain=1.0), bio)
        hourly_step(state, _sample(rain=1.0), bio)
        first, second = state.cohorts
        assert first.germination_level == pytest.approx(2 * HT_PER_HOUR)
        assert second.germination_level == pytest.approx(HT_PER_HOUR)


# ═══════════════════════════════════════════════════════════════════════
# COHORT STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════

class TestAdvanceCohort:
    def test_germination_stops_at_threshold(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=1.0)
        advance_cohort(cohort, _sample(), 1, bio)
        assert cohort.germination_level == 1.0
        assert cohort.sporangia_survival > 0.0

    def test_release_carries_germination_level(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=0.9999)
        advance_cohort(cohort, _sample(), 5, bio)
        assert cohort.zoospores_released
        assert cohort.release_hour == 5
        assert cohort.zoospore_release_ratio == cohort.germination_level

    def test_no_release_on_dry_litter(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=1.0)
        advance_cohort(cohort, _sample(moist=False), 1, bio)
        assert not cohort.zoospores_released

    def test_no_release_once_survival_above_threshold(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=1.0,
                               sporangia_survival=1.0)
        advance_cohort(cohort, _sample(), 1, bio)
        assert not cohort.zoospores_released

    def test_dispersal_without_infection(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=1.0,
                               sporangia_survival=1.5,
                               zoospores_released=True,
                               zoospore_release_ratio=1.0,
                               release_hour=0)
        advance_cohort(cohort, _sample(rain=1.0), 10, bio)
        assert cohort.zoospore_dispersal_ratio == 1.0
        assert not cohort.oil_spots_on_leaves
        assert cohort.zoospore_infection_ratio == 0.0

    def test_infection_sets_ratio_to_dispersal(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=1.002,
                               sporangia_survival=4.5,
                               zoospores_released=True,
                               zoospore_release_ratio=1.002,
                               release_hour=0)
        advance_cohort(cohort, _sample(rain=1.0), 600, bio)
        assert cohort.oil_spots_on_leaves
        assert cohort.infection_hour == 600
        assert cohort.zoospore_infection_ratio == cohort.zoospore_dispersal_ratio == 1.002
        assert cohort.stage == CohortStage.INFECTED

    def test_infection_needs_rain(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=1.0,
                               sporangia_survival=10.0,
                               zoospores_released=True,
                               zoospore_release_ratio=1.0,
                               release_hour=0)
        advance_cohort(cohort, _sample(rain=0.0), 600, bio)
        assert not cohort.oil_spots_on_leaves
        assert cohort.zoospore_dispersal_ratio == 0.0

    def test_infection_hour_kept_on_reinfection(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=1.0,
                               sporangia_survival=10.0,
                               zoospores_released=True,
                               zoospore_release_ratio=1.0,
                               release_hour=0)
        advance_cohort(cohort, _sample(rain=1.0), 600, bio)
        advance_cohort(cohort, _sample(rain=1.0), 700, bio)
        assert cohort.infection_hour == 600

    def test_zoospore_survival_counts_wet_hours(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=0.9999)
        advance_cohort(cohort, _sample(), 10, bio)     # released, wet hour 1
        assert cohort.zoospore_survival == 0.0
        advance_cohort(cohort, _sample(moist=False), 11, bio)
        advance_cohort(cohort, _sample(), 12, bio)
        assert cohort.wet_hours_since_release == 2
        assert cohort.zoospore_survival == pytest.approx(2 / 2)

    def test_degenerate_survival_rate_surfaces(self, bio):
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=1.0,
                               sporangia_survival=0.5)
        with pytest.raises(NumericDomainError):
            advance_cohort(cohort, _sample(T=30.0, rh=50.0), 3, bio)
        assert cohort.sporangia_survival == 0.5

    def test_custom_thresholds(self):
        bio = BiologySection(germination_complete=0.5)
        cohort = OosporeCohort(germination_start_hour=0,
                               dormancy_breaking_progress=0.1,
                               germination_level=0.5)
        advance_cohort(cohort, _sample(), 1, bio)
        assert cohort.zoospores_released


# ═══════════════════════════════════════════════════════════════════════
# FULL RUNS
# ═══════════════════════════════════════════════════════════════════════

class TestScenarios:
    def test_spike_at_hour_40_too_early(self):
        """Clock at hour 40 is 41/178.01 ≈ 0.23, below 1.3: no cohort."""
        weather = constant_weather(24 * 20, rain_hours=[40], rain_mm=0.5)
        expected_ht = cumulative_hydro_thermal_time(weather)[40]
        assert expected_ht == pytest.approx(41 * HT_PER_HOUR)
        cohorts = run_simulation(weather, *_window(20))
        if 1.3 <= expected_ht <= 8.6:
            assert len(cohorts) == 1
            assert cohorts[0].germination_start_hour == 40
        else:
            assert cohorts == []

    def test_spike_inside_window_spawns_one(self):
        weather = constant_weather(24 * 20, rain_hours=[300], rain_mm=0.5)
        expected_ht = cumulative_hydro_thermal_time(weather)[300]
        assert 1.3 <= expected_ht <= 8.6
        cohorts = run_simulation(weather, *_window(20))
        assert len(cohorts) == 1
        cohort = cohorts[0]
        assert cohort.germination_start_hour == 300
        # 179th cohort hour is hour 478; released in that same hour
        assert cohort.release_hour == 478
        assert cohort.zoospore_release_ratio == pytest.approx(179 * HT_PER_HOUR)
        assert not cohort.oil_spots_on_leaves

    def test_all_dry_produces_nothing(self):
        weather = constant_weather(24 * 30, leaf_litter_moist=False,
                                   rain_hours=range(0, 720, 5), rain_mm=2.0)
        result = run_model(weather, *_window(30))
        assert result.cohorts == []
        assert result.final_hydro_thermal_time == 0.0

    def test_cold_weather_produces_nothing(self):
        weather = constant_weather(24 * 10, temperature=-2.0,
                                   rain_hours=range(0, 240, 3))
        assert run_simulation(weather, *_window(10)) == []

    def test_three_rains(self, three_rains):
        cohorts = run_simulation(three_rains, *_window(50))
        assert [c.germination_start_hour for c in cohorts] == [300, 600, 1000]

        first, second, third = cohorts
        # SUS at 1000 ≈ 523 × 0.00977 ≈ 5.1 → 5.1 × 15 ≥ 60
        assert first.oil_spots_on_leaves
        assert first.infection_hour == 1000
        assert first.zoospore_infection_ratio == first.zoospore_dispersal_ratio
        assert first.zoospore_dispersal_ratio == first.zoospore_release_ratio
        # SUS at 1000 ≈ 2.2 → 32.6 < 60: dispersed only
        assert second.zoospores_released
        assert second.zoospore_dispersal_ratio == second.zoospore_release_ratio
        assert not second.oil_spots_on_leaves
        # released at hour 1178, no rain afterwards
        assert third.release_hour == 1178
        assert third.zoospore_dispersal_ratio == 0.0

    def test_zoospore_survival_always_moist(self, three_rains):
        first = run_simulation(three_rains, *_window(50))[0]
        last_hour = 24 * 50 - 1
        assert first.wet_hours_since_release == last_hour - 478 + 1
        assert first.zoospore_survival == pytest.approx(
            (last_hour - 478) / (last_hour - 478 + 1)
        )

    def test_minimum_hours_with_clock_exactly_on_bound(self):
        """Clock landing exactly on ht_min at the rain hour spawns a cohort."""
        weather = constant_weather(24 * 5, rain_hours=[50], rain_mm=1.0)
        window = _window(5)
        trace = run_model(weather, *window, record_hourly=True)
        config = default_config()
        config.biology.ht_min = float(trace.hourly_hydro_thermal_time[50])
        cohorts = run_simulation(weather, *window, config)
        assert [c.germination_start_hour for c in cohorts] == [50]

        config.biology.ht_min = 0.0
        config.biology.ht_max = float(trace.hourly_hydro_thermal_time[50])
        cohorts = run_simulation(weather, *window, config)
        assert [c.germination_start_hour for c in cohorts] == [50]


class TestRunProperties:
    @pytest.fixture
    def spring(self):
        rain = list(range(200, 24 * 40, 37))
        return diurnal_weather(24 * 40, mean_temperature=16.0,
                               temperature_amplitude=6.0, mean_humidity=85.0,
                               humidity_amplitude=10.0, leaf_litter_moist=True,
                               rain_hours=rain, rain_mm=1.0)

    def test_deterministic(self, spring):
        a = run_simulation(spring, *_window(40))
        b = run_simulation(spring, *_window(40))
        assert len(a) == len(b) > 0
        assert [asdict(c) for c in a] == [asdict(c) for c in b]

    def test_monotone_fields(self, spring):
        bio = BiologySection()
        state = SimulationState()
        history = {}
        for hour in range(spring.num_hours):
            hourly_step(state, spring.sample(hour), bio)
            for i, c in enumerate(state.cohorts):
                prev = history.get(i)
                if prev is not None:
                    germ, sus, released, infected = prev
                    assert c.germination_level >= germ
                    if germ >= bio.germination_complete:
                        assert c.germination_level == germ
                    assert c.sporangia_survival >= sus
                    assert c.zoospores_released or not released
                    assert c.oil_spots_on_leaves or not infected
                history[i] = (c.germination_level, c.sporangia_survival,
                              c.zoospores_released, c.oil_spots_on_leaves)
        assert len(state.cohorts) > 0

    def test_cohorts_in_creation_order(self, spring):
        cohorts = run_simulation(spring, *_window(40))
        hours = [c.germination_start_hour for c in cohorts]
        assert hours == sorted(hours)
        assert len(set(hours)) == len(hours)

    def test_cohorts_are_independent(self, spring):
        """A cohort evolves the same whether or not later cohorts exist."""
        full = run_simulation(spring, *_window(40))
        bio = BiologySection()
        first = full[0]
        solo = OosporeCohort(germination_start_hour=first.germination_start_hour,
                             dormancy_breaking_progress=first.dormancy_breaking_progress)
        for hour in range(first.germination_start_hour, spring.num_hours):
            advance_cohort(solo, spring.sample(hour), hour, bio)
        assert asdict(solo) == asdict(first)

    def test_accumulators_finite(self, spring):
        for c in run_simulation(spring, *_window(40)):
            for value in (c.germination_level, c.sporangia_survival,
                          c.zoospore_survival, c.zoospore_release_ratio):
                assert np.isfinite(value)


class TestRunModel:
    def test_hourly_traces(self, three_rains):
        result = run_model(three_rains, *_window(50), record_hourly=True)
        assert isinstance(result, SimulationResult)
        assert result.hourly_hydro_thermal_time.shape == (1200,)
        np.testing.assert_allclose(result.hourly_hydro_thermal_time,
                                   cumulative_hydro_thermal_time(three_rains))
        assert result.hourly_n_cohorts[299] == 0
        assert result.hourly_n_cohorts[300] == 1
        assert result.hourly_n_cohorts[-1] == 3
        assert result.hourly_n_infected[999] == 0
        assert result.hourly_n_infected[1000] == 1
        assert np.all(np.diff(result.hourly_n_released) >= 0)

    def test_no_traces_by_default(self, three_rains):
        result = run_model(three_rains, *_window(50))
        assert result.hourly_hydro_thermal_time is None
        assert result.final_hydro_thermal_time == pytest.approx(1200 * HT_PER_HOUR)

    def test_degenerate_weather_aborts_run(self):
        n = 24 * 30
        T = np.full(n, 15.0)
        rh = np.full(n, 80.0)
        T[600:] = 30.0
        rh[600:] = 50.0
        rain = np.zeros(n)
        rain[300] = 1.0
        weather = WeatherSeries(T, rain, rh, np.ones(n, dtype=bool))
        with pytest.raises(NumericDomainError):
            run_simulation(weather, *_window(30))

    def test_cohort_growth_warning(self):
        config = default_config()
        config.simulation.cohort_warning_threshold = 2
        weather = constant_weather(24 * 20, rain_hours=[300, 301, 302, 303])
        with pytest.warns(UserWarning, match="never pruned"):
            run_model(weather, *_window(20), config)

    def test_perf_tracks_phases(self, three_rains):
        perf = PerfMonitor(enabled=True)
        run_model(three_rains, *_window(50), perf=perf)
        stats = perf.get_stats()
        assert set(stats) == {"clock", "spawn", "cohorts"}
        assert stats["cohorts"].call_count == 1200

"""Command-line runner for the Rossi oospore model.

Usage:
    rossi-oospore --config configs/default.yaml
    rossi-oospore --config configs/default.yaml --scenario configs/scenarios/spring_rains.yaml
    rossi-oospore --config configs/default.yaml --weather station.csv --start 2024-04-01 --end 2024-06-01
    rossi-oospore --json > cohorts.json
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from rossi_oospore.config import default_config, load_config, validate_config
from rossi_oospore.environment import weather_from_config
from rossi_oospore.model import run_model
from rossi_oospore.perf import PerfMonitor
from rossi_oospore.summary import cohort_records, format_summary, summarize_cohorts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='rossi-oospore',
        description='Hourly oospore life-cycle simulation (Rossi et al. 2008).',
    )
    parser.add_argument('--config', help='Base YAML config (defaults built in)')
    parser.add_argument('--scenario', help='Scenario YAML merged over --config')
    parser.add_argument('--weather', help='Hourly weather CSV (overrides weather.source)')
    parser.add_argument('--start', help='Start date, YYYY-MM-DD')
    parser.add_argument('--end', help='End date (exclusive), YYYY-MM-DD')
    parser.add_argument('--json', action='store_true',
                        help='Print cohort records as JSON instead of a summary')
    parser.add_argument('--perf', action='store_true', help='Print loop timing')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.weather:
        overrides['weather'] = {'source': 'csv', 'csv_path': args.weather}
    if args.start:
        overrides.setdefault('simulation', {})['start_date'] = args.start
    if args.end:
        overrides.setdefault('simulation', {})['end_date'] = args.end

    if args.config:
        config = load_config(args.config, args.scenario, overrides)
    else:
        if args.scenario:
            print("--scenario requires --config", file=sys.stderr)
            return 2
        config = default_config()
        if overrides:
            if 'weather' in overrides:
                config.weather.source = 'csv'
                config.weather.csv_path = args.weather
            if args.start:
                config.simulation.start_date = args.start
            if args.end:
                config.simulation.end_date = args.end
            validate_config(config)

    weather = weather_from_config(config)
    start, end = config.simulation.window()
    perf = PerfMonitor(enabled=args.perf)
    result = run_model(weather, start, end, config, perf=perf)

    if args.json:
        print(json.dumps(cohort_records(result.cohorts), indent=2))
    else:
        print(f"{start} .. {end}  ({result.n_hours} h, final HT "
              f"{result.final_hydro_thermal_time:.3f})")
        print(format_summary(summarize_cohorts(result.cohorts)))
    if args.perf:
        print(perf.report(), file=sys.stderr)
    return 0


if __name__ == '__main__':
    sys.exit(main())

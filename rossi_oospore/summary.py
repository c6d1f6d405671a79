"""Post-run cohort summaries for downstream reporting.

Nothing here feeds back into the simulation.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence

from rossi_oospore.types import CohortStage, OosporeCohort


@dataclass
class CohortSummary:
    """Counts and first-event hours across a run's cohorts."""
    n_cohorts: int = 0
    n_germinated: int = 0        # reached SUS accumulation or beyond
    n_released: int = 0
    n_infected: int = 0
    first_spawn_hour: Optional[int] = None
    first_release_hour: Optional[int] = None
    first_infection_hour: Optional[int] = None
    stage_counts: Dict[str, int] = field(default_factory=dict)


def _first(hours) -> Optional[int]:
    hours = [h for h in hours if h is not None]
    return min(hours) if hours else None


def summarize_cohorts(cohorts: Sequence[OosporeCohort]) -> CohortSummary:
    stages = [c.stage for c in cohorts]
    return CohortSummary(
        n_cohorts=len(cohorts),
        n_germinated=sum(s >= CohortStage.GERMINATED for s in stages),
        n_released=sum(c.zoospores_released for c in cohorts),
        n_infected=sum(c.oil_spots_on_leaves for c in cohorts),
        first_spawn_hour=_first(c.germination_start_hour for c in cohorts),
        first_release_hour=_first(c.release_hour for c in cohorts),
        first_infection_hour=_first(c.infection_hour for c in cohorts),
        stage_counts={s.name: stages.count(s) for s in CohortStage},
    )


def cohort_records(cohorts: Sequence[OosporeCohort]) -> List[dict]:
    """One plain dict per cohort (all fields plus stage name)."""
    records = []
    for cohort in cohorts:
        record = asdict(cohort)
        record['stage'] = cohort.stage.name
        records.append(record)
    return records


def format_summary(summary: CohortSummary, title: str = "Oospore cohorts") -> str:
    """Human-readable multi-line summary."""
    def hour(h):
        return '-' if h is None else str(h)

    lines = [
        title,
        f"  cohorts:          {summary.n_cohorts}",
        f"  germinated:       {summary.n_germinated}",
        f"  released:         {summary.n_released}",
        f"  infected (OSL):   {summary.n_infected}",
        f"  first spawn h:    {hour(summary.first_spawn_hour)}",
        f"  first release h:  {hour(summary.first_release_hour)}",
        f"  first infection h: {hour(summary.first_infection_hour)}",
        "  by stage:",
    ]
    for name, count in summary.stage_counts.items():
        lines.append(f"    {name:<12} {count}")
    return '\n'.join(lines)

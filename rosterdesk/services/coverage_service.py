"""
Coverage analysis: does a staffing plan meet each team's daily minimum?

`analyze_coverage` is pure and works on already-resolved data;
`CoverageService` resolves that data through the ledger adapters.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from flask import current_app

from rosterdesk.errors import ValidationFailure, AnalysisAborted, ConfigurationGap
from rosterdesk.models.schedule import activities_where
from rosterdesk.services.ledger import ScheduleLedger, Directory, HolidayCalendar
from rosterdesk.utils.dates import iter_days, is_weekend

logger = logging.getLogger(__name__)

COVERAGE_ACTIVITIES = activities_where(lambda rule: rule.counts_toward_coverage)


def percent_half_up(numerator: int, denominator: int) -> int:
    """round(numerator / denominator * 100) with .5 rounded up."""
    return (200 * numerator + denominator) // (2 * denominator)


@dataclass
class CoverageGap:
    date: date
    team_id: int
    team_name: str
    required: int
    actual: int
    is_weekend: bool
    is_holiday: bool

    @property
    def deficit(self) -> int:
        return self.required - self.actual

    def to_dict(self):
        return {
            'date': self.date.isoformat(),
            'team_id': self.team_id,
            'team_name': self.team_name,
            'required': self.required,
            'actual': self.actual,
            'deficit': self.deficit,
            'is_weekend': self.is_weekend,
            'is_holiday': self.is_holiday,
        }


@dataclass
class CoverageAnalysis:
    coverage_percentage: int
    gaps: List[CoverageGap]
    below_threshold: bool
    total_days: int
    covered_days: int
    threshold: int
    configuration_gaps: List[ConfigurationGap] = field(default_factory=list)

    def to_dict(self):
        return {
            'coverage_percentage': self.coverage_percentage,
            'gaps': [g.to_dict() for g in self.gaps],
            'below_threshold': self.below_threshold,
            'total_days': self.total_days,
            'covered_days': self.covered_days,
            'threshold': self.threshold,
            'configuration_gaps': [c.to_dict() for c in self.configuration_gaps],
        }


def analyze_coverage(team_ids: Iterable[int], start_date: date, end_date: date,
                     requirements: Dict[int, object], entries: Iterable[object],
                     holidays: Iterable[date], teams: Optional[Dict[int, object]] = None,
                     threshold: int = 90, default_min_staff: int = 1,
                     should_abort: Optional[Callable[[], bool]] = None) -> CoverageAnalysis:
    """
    Compare daily staffing against each team's minimum.

    Args:
        team_ids: Teams to analyze, in report order
        start_date: First day (inclusive)
        end_date: Last day (inclusive)
        requirements: team_id -> object with `min_staff_required`
        entries: Schedule entries (anything with user_id, team_id, date, activity_type)
        holidays: Holiday dates, flagged on gaps
        teams: team_id -> object with `name` (optional)
        threshold: Percentage below which the plan is flagged
        default_min_staff: Minimum used when a team has no requirement
        should_abort: Polled once per day; returning True cancels the run

    Returns:
        CoverageAnalysis

    Raises:
        ValidationFailure: end_date before start_date
        AnalysisAborted: should_abort returned True
    """
    if end_date < start_date:
        raise ValidationFailure(
            "End date must not be before start date",
            code='invalid_date_range',
            details={'start_date': start_date.isoformat(), 'end_date': end_date.isoformat()},
        )

    team_ids = list(dict.fromkeys(team_ids))
    teams = teams or {}
    holiday_dates = set(holidays)

    # Distinct workers per (team, date)
    staffed: Dict[tuple, set] = {}
    for entry in entries:
        if entry.activity_type not in COVERAGE_ACTIVITIES:
            continue
        staffed.setdefault((entry.team_id, entry.date), set()).add(entry.user_id)

    config_gaps = []
    required_by_team = {}
    for team_id in team_ids:
        requirement = requirements.get(team_id)
        if requirement is None:
            gap = ConfigurationGap(
                kind='missing_capacity_requirement',
                team_id=team_id,
                message=f"No minimum staffing configured for team {team_id}",
                defaulted_to=default_min_staff,
            )
            logger.warning("%s; using %d", gap.message, default_min_staff)
            config_gaps.append(gap)
            required_by_team[team_id] = default_min_staff
        else:
            # Weekends use the same minimum
            required_by_team[team_id] = requirement.min_staff_required

    gaps = []
    total = 0
    covered = 0
    for day in iter_days(start_date, end_date):
        if should_abort is not None and should_abort():
            logger.info("Coverage analysis aborted at %s", day)
            raise AnalysisAborted(
                "Coverage analysis was cancelled",
                details={'aborted_at': day.isoformat()},
            )
        for team_id in team_ids:
            total += 1
            required = required_by_team[team_id]
            actual = len(staffed.get((team_id, day), ()))
            if actual >= required:
                covered += 1
                continue
            team = teams.get(team_id)
            gaps.append(CoverageGap(
                date=day,
                team_id=team_id,
                team_name=team.name if team is not None else f'Team {team_id}',
                required=required,
                actual=actual,
                is_weekend=is_weekend(day),
                is_holiday=day in holiday_dates,
            ))

    gaps.sort(key=lambda g: -g.deficit)
    percentage = 100 if total == 0 else percent_half_up(covered, total)

    return CoverageAnalysis(
        coverage_percentage=percentage,
        gaps=gaps,
        below_threshold=percentage < threshold,
        total_days=total,
        covered_days=covered,
        threshold=threshold,
        configuration_gaps=config_gaps,
    )


class CoverageService:
    """Runs coverage analysis against the persisted ledger."""

    @staticmethod
    def analyze(team_ids: List[int], start_date: date, end_date: date,
                threshold: Optional[int] = None,
                should_abort: Optional[Callable[[], bool]] = None) -> CoverageAnalysis:
        """Fetch requirements, entries and holidays, then analyze.

        Raises:
            CollaboratorUnavailable: any fetch failed
        """
        if end_date < start_date:
            raise ValidationFailure(
                "End date must not be before start date",
                code='invalid_date_range',
            )
        if threshold is None:
            threshold = current_app.config.get('COVERAGE_THRESHOLD', 90)

        teams = Directory.teams(team_ids)
        requirements = Directory.capacity_requirements(team_ids)
        entries = ScheduleLedger.entries_for(team_ids, start_date, end_date, COVERAGE_ACTIVITIES)
        holidays = HolidayCalendar.holiday_dates(start_date, end_date)

        analysis = analyze_coverage(
            team_ids, start_date, end_date,
            requirements=requirements,
            entries=entries,
            holidays=holidays,
            teams=teams,
            threshold=threshold,
            default_min_staff=current_app.config.get('COVERAGE_DEFAULT_MIN_STAFF', 1),
            should_abort=should_abort,
        )
        logger.info(
            "Coverage %s..%s teams=%s: %d%% (%d gaps)",
            start_date, end_date, list(team_ids), analysis.coverage_percentage, len(analysis.gaps),
        )
        return analysis

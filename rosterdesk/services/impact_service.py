"""
Coverage impact of taking one person off their shift (absence or swap).
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from rosterdesk.models.schedule import ShiftType, activities_where
from rosterdesk.services.coverage_service import percent_half_up
from rosterdesk.services.ledger import ScheduleLedger, Directory

logger = logging.getLogger(__name__)

IMPACT_ACTIVITIES = activities_where(lambda rule: rule.counts_for_impact)


@dataclass
class ImpactWarning:
    date: date
    shift_type: ShiftType
    current_staff: int
    required_staff: int
    remaining_staff: int
    percentage: int
    is_critical: bool

    def to_dict(self):
        return {
            'date': self.date.isoformat(),
            'shift_type': self.shift_type.value,
            'current_staff': self.current_staff,
            'required_staff': self.required_staff,
            'remaining_staff': self.remaining_staff,
            'percentage': self.percentage,
            'is_critical': self.is_critical,
        }


@dataclass
class ImpactResult:
    warnings: List[ImpactWarning] = field(default_factory=list)
    partnership_id: Optional[int] = None

    @property
    def has_impact(self):
        return bool(self.warnings)

    @property
    def has_critical_impact(self):
        return any(w.is_critical for w in self.warnings)

    def to_dict(self):
        return {
            'has_impact': self.has_impact,
            'has_critical_impact': self.has_critical_impact,
            'warnings': [w.to_dict() for w in self.warnings],
            'partnership_id': self.partnership_id,
        }


def estimate_impact(user_id: int, dates: Iterable[date], requirements: Dict[ShiftType, int],
                    entries: Iterable[object], shift_type: Optional[ShiftType] = None) -> ImpactResult:
    """
    Predict staffing per date once `user_id` is removed.

    Args:
        user_id: Person being taken off
        dates: Dates to check
        requirements: shift_type -> staff_required for the partnership
        entries: Partner-team entries on those dates
        shift_type: Override for the shift the person would leave

    Returns:
        ImpactResult with a warning for every date left short
    """
    by_date: Dict[date, list] = {}
    for entry in entries:
        if entry.activity_type in IMPACT_ACTIVITIES:
            by_date.setdefault(entry.date, []).append(entry)

    result = ImpactResult()
    for day in dates:
        day_entries = by_date.get(day, [])
        own = next((e for e in day_entries if e.user_id == user_id), None)
        effective = shift_type or (own.shift_type if own is not None else ShiftType.NORMAL)

        required = requirements.get(effective)
        if required is None or required <= 0:
            continue

        current = sum(1 for e in day_entries if e.shift_type == effective)
        remaining = current - 1
        if remaining < required:
            result.warnings.append(ImpactWarning(
                date=day,
                shift_type=effective,
                current_staff=current,
                required_staff=required,
                remaining_staff=remaining,
                percentage=percent_half_up(remaining, required),
                is_critical=remaining < required,
            ))
    return result


class ImpactService:
    """Resolves partnership data and runs the impact estimate."""

    @staticmethod
    def analyze(user_id: int, team_id: int, dates: List[date],
                shift_type: Optional[ShiftType] = None) -> ImpactResult:
        """
        Impact of removing a user from their team's shifts on the given dates.

        Teams outside any partnership have no shift requirements, so the
        result is empty rather than an error.

        Raises:
            CollaboratorUnavailable: any fetch failed
        """
        partnerships = Directory.partnerships_for_team(team_id)
        if not partnerships:
            return ImpactResult()

        partnership = partnerships[0]
        requirements = Directory.shift_requirements(partnership.id)
        if not requirements:
            return ImpactResult(partnership_id=partnership.id)

        entries = ScheduleLedger.entries_on_dates(partnership.team_ids, dates, IMPACT_ACTIVITIES)
        result = estimate_impact(user_id, dates, requirements, entries, shift_type)
        result.partnership_id = partnership.id
        if result.has_critical_impact:
            logger.info("Removing user %s leaves %d critical dates", user_id, len(result.warnings))
        return result

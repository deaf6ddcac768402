"""
Thin adapters over the persisted collaborators: the schedule ledger, the
team/user directory and the holiday calendar.

Decision logic never queries the database itself; services resolve data
through these adapters and hand it to pure functions. Every fetch failure is
raised as CollaboratorUnavailable so an outage can never be mistaken for
"no rows".
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from functools import wraps
from typing import Dict, Iterable, List, Optional, Set

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from rosterdesk.errors import CollaboratorUnavailable
from rosterdesk.extensions import db, cache
from rosterdesk.models.holiday import Holiday
from rosterdesk.models.rotation import EligibleMember, RotationTeamConfig
from rosterdesk.models.schedule import ScheduleEntry, ActivityType, ShiftType
from rosterdesk.models.team import (
    Team, TeamMember, CapacityRequirement, PlanningPartnership, PartnershipShiftRequirement
)
from rosterdesk.models.user import User

logger = logging.getLogger(__name__)


def collaborator(name):
    """Translate database failures inside an adapter call."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error("%s unavailable during %s: %s", name, f.__name__, e, exc_info=True)
                raise CollaboratorUnavailable(
                    f"{name} unavailable",
                    details={'operation': f.__name__},
                ) from e
        return decorated
    return decorator


@dataclass(frozen=True)
class HolidayRecord:
    date: date
    name: str
    country_code: Optional[str]
    region_code: Optional[str]

    def applies_to(self, country_code, region_code=None):
        if self.country_code is None:
            return True
        if self.country_code != country_code:
            return False
        return self.region_code is None or self.region_code == region_code


class ScheduleLedger:
    """Read/write access to schedule entries."""

    @staticmethod
    @collaborator('Schedule ledger')
    def entries_for(team_ids: Iterable[int], start_date: date, end_date: date,
                    activity_types: Optional[Iterable[ActivityType]] = None) -> List[ScheduleEntry]:
        """Entries of the given teams within an inclusive date range."""
        team_ids = list(team_ids)
        if not team_ids:
            return []
        query = ScheduleEntry.query.filter(
            ScheduleEntry.team_id.in_(team_ids),
            ScheduleEntry.date >= start_date,
            ScheduleEntry.date <= end_date,
        )
        if activity_types is not None:
            query = query.filter(ScheduleEntry.activity_type.in_(list(activity_types)))
        return query.order_by(ScheduleEntry.date, ScheduleEntry.id).all()

    @staticmethod
    @collaborator('Schedule ledger')
    def entries_on_dates(team_ids: Iterable[int], dates: Iterable[date],
                         activity_types: Optional[Iterable[ActivityType]] = None) -> List[ScheduleEntry]:
        team_ids = list(team_ids)
        dates = list(dates)
        if not team_ids or not dates:
            return []
        query = ScheduleEntry.query.filter(
            ScheduleEntry.team_id.in_(team_ids),
            ScheduleEntry.date.in_(dates),
        )
        if activity_types is not None:
            query = query.filter(ScheduleEntry.activity_type.in_(list(activity_types)))
        return query.order_by(ScheduleEntry.date, ScheduleEntry.id).all()

    @staticmethod
    @collaborator('Schedule ledger')
    def entries_for_users(user_ids: Iterable[int], start_date: date, end_date: date) -> List[ScheduleEntry]:
        """Entries of the given users across every team."""
        user_ids = list(user_ids)
        if not user_ids:
            return []
        return ScheduleEntry.query.filter(
            ScheduleEntry.user_id.in_(user_ids),
            ScheduleEntry.date >= start_date,
            ScheduleEntry.date <= end_date,
        ).order_by(ScheduleEntry.date, ScheduleEntry.id).all()

    @staticmethod
    @collaborator('Schedule ledger')
    def get_entries(entry_ids: Iterable[int]) -> Dict[int, ScheduleEntry]:
        ids = [i for i in entry_ids if i is not None]
        if not ids:
            return {}
        return {e.id: e for e in ScheduleEntry.query.filter(ScheduleEntry.id.in_(ids)).all()}

    @staticmethod
    @collaborator('Schedule ledger')
    def user_entries_on(user_id: int, day: date) -> List[ScheduleEntry]:
        return ScheduleEntry.query.filter_by(user_id=user_id, date=day).order_by(ScheduleEntry.id).all()

    @staticmethod
    @collaborator('Schedule ledger')
    def find_slot(user_id: int, team_id: int, day: date) -> Optional[ScheduleEntry]:
        """The entry occupying a (user, team, date) slot, if any."""
        return ScheduleEntry.query.filter_by(
            user_id=user_id, team_id=team_id, date=day
        ).order_by(ScheduleEntry.id).first()

    @staticmethod
    @collaborator('Schedule ledger')
    def conditional_update(entry_id: int, expected_version: int, **values) -> bool:
        """Update an entry only if its version is unchanged; bumps the version.

        Returns False when the guard matched no row. The caller owns the
        transaction.
        """
        values['version'] = expected_version + 1
        values['updated_at'] = datetime.utcnow()
        updated = ScheduleEntry.query.filter(
            ScheduleEntry.id == entry_id,
            ScheduleEntry.version == expected_version,
        ).update(values, synchronize_session=False)
        return updated == 1

    @staticmethod
    @collaborator('Schedule ledger')
    def last_assignment_dates(team_id: int, before: date,
                              activity_type: ActivityType = ActivityType.HOTLINE_SUPPORT) -> Dict[int, date]:
        """Most recent committed assignment per user before a date."""
        rows = db.session.query(
            ScheduleEntry.user_id, db.func.max(ScheduleEntry.date)
        ).filter(
            ScheduleEntry.team_id == team_id,
            ScheduleEntry.activity_type == activity_type,
            ScheduleEntry.date < before,
        ).group_by(ScheduleEntry.user_id).all()
        return {user_id: last for user_id, last in rows}


class Directory:
    """Teams, memberships, requirements and partnerships."""

    @staticmethod
    @collaborator('Team directory')
    def teams(team_ids: Iterable[int]) -> Dict[int, Team]:
        team_ids = list(team_ids)
        if not team_ids:
            return {}
        return {t.id: t for t in Team.query.filter(Team.id.in_(team_ids)).all()}

    @staticmethod
    @collaborator('Team directory')
    def users(user_ids: Iterable[int]) -> Dict[int, User]:
        user_ids = list(user_ids)
        if not user_ids:
            return {}
        return {u.id: u for u in User.query.filter(User.id.in_(user_ids)).all()}

    @staticmethod
    @collaborator('Team directory')
    def member_ids(team_id: int) -> List[int]:
        """Active members of a team, in join order."""
        rows = db.session.query(TeamMember.user_id).join(
            User, User.id == TeamMember.user_id
        ).filter(
            TeamMember.team_id == team_id,
            User.is_active.is_(True),
        ).order_by(TeamMember.id).all()
        return [r[0] for r in rows]

    @staticmethod
    @collaborator('Team directory')
    def team_ids_for_user(user_id: int) -> Set[int]:
        return {m.team_id for m in TeamMember.query.filter_by(user_id=user_id).all()}

    @staticmethod
    @collaborator('Coverage requirement store')
    def capacity_requirements(team_ids: Iterable[int]) -> Dict[int, CapacityRequirement]:
        team_ids = list(team_ids)
        if not team_ids:
            return {}
        return {
            r.team_id: r
            for r in CapacityRequirement.query.filter(CapacityRequirement.team_id.in_(team_ids)).all()
        }

    @staticmethod
    @collaborator('Team directory')
    def partnerships_for_team(team_id: int) -> List[PlanningPartnership]:
        """Partnerships listing the team, oldest first."""
        return [
            p for p in PlanningPartnership.query.order_by(PlanningPartnership.id).all()
            if team_id in (p.team_ids or [])
        ]

    @staticmethod
    def are_partnered(team_a: int, team_b: int) -> bool:
        """Same team, or jointly listed in some partnership."""
        if team_a == team_b:
            return True
        return any(p.includes(team_a, team_b) for p in Directory.partnerships_for_team(team_a))

    @staticmethod
    def partnered_team_ids(team_id: int) -> Set[int]:
        """The team itself plus every team it shares a partnership with."""
        team_ids = {team_id}
        for partnership in Directory.partnerships_for_team(team_id):
            team_ids.update(partnership.team_ids)
        return team_ids

    @staticmethod
    @collaborator('Coverage requirement store')
    def shift_requirements(partnership_id: int) -> Dict[ShiftType, int]:
        """staff_required per shift type for a partnership."""
        rows = PartnershipShiftRequirement.query.filter_by(partnership_id=partnership_id).all()
        return {r.shift_type: r.staff_required for r in rows}

    @staticmethod
    @collaborator('Team directory')
    def rotation_config(team_id: int) -> Optional[RotationTeamConfig]:
        return RotationTeamConfig.query.filter_by(team_id=team_id).first()

    @staticmethod
    @collaborator('Team directory')
    def eligible_members(team_id: int) -> List[EligibleMember]:
        """Active on-call eligible members whose account is active, in pool order."""
        return EligibleMember.query.join(
            User, User.id == EligibleMember.user_id
        ).filter(
            EligibleMember.team_id == team_id,
            EligibleMember.is_active.is_(True),
            User.is_active.is_(True),
        ).order_by(EligibleMember.id).all()


def _load_holidays(start_date, end_date):
    key = f'holidays:{start_date.isoformat()}:{end_date.isoformat()}'
    records = cache.get(key)
    if records is None:
        rows = Holiday.query.filter(
            Holiday.date >= start_date,
            Holiday.date <= end_date,
            Holiday.is_public.is_(True),
        ).order_by(Holiday.date).all()
        records = [HolidayRecord(h.date, h.name, h.country_code, h.region_code) for h in rows]
        cache.set(key, records, timeout=current_app.config.get('HOLIDAY_CACHE_TIMEOUT', 3600))
    return records


class HolidayCalendar:
    """Public holidays, optionally narrowed to a country/region."""

    @staticmethod
    @collaborator('Holiday calendar')
    def holidays_between(start_date: date, end_date: date,
                         country_code: Optional[str] = None,
                         region_code: Optional[str] = None) -> List[HolidayRecord]:
        holidays = _load_holidays(start_date, end_date)
        if country_code is None:
            return list(holidays)
        return [h for h in holidays if h.applies_to(country_code, region_code)]

    @staticmethod
    def holiday_dates(start_date: date, end_date: date,
                      country_code: Optional[str] = None,
                      region_code: Optional[str] = None) -> Set[date]:
        return {h.date for h in HolidayCalendar.holidays_between(start_date, end_date, country_code, region_code)}

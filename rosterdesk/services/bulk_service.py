"""
Bulk schedule generation.

Drafts are generated in memory first (`generate_bulk_drafts`), previewed
against the ledger, then committed in one transaction where every write is
re-validated against the slot it targets.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from rosterdesk.errors import ValidationFailure, ConflictDetected, CollaboratorUnavailable
from rosterdesk.extensions import db
from rosterdesk.models.notification import NotificationCategory
from rosterdesk.models.schedule import (
    ScheduleEntry, ShiftType, ActivityType, AvailabilityStatus, default_time_blocks
)
from rosterdesk.services.ledger import ScheduleLedger, Directory, HolidayCalendar
from rosterdesk.utils.dates import days_between
from rosterdesk.utils.notifications import dispatch

logger = logging.getLogger(__name__)

BULK_NOTE = 'Bulk generated'
ROTATION_NOTE = 'Bulk generated (rotation)'

CONFLICT_POLICIES = ('skip', 'overwrite', 'prompt')


class BulkMode(enum.Enum):
    EXPLICIT_USERS = 'explicit_users'
    WHOLE_TEAM = 'whole_team'
    ROTATION = 'rotation'


@dataclass
class BulkScheduleConfig:
    mode: BulkMode
    team_id: int
    start_date: date
    end_date: date
    shift_type: ShiftType = ShiftType.NORMAL
    skip_weekends: bool = True
    skip_holidays: bool = False
    user_ids: List[int] = field(default_factory=list)
    created_by: Optional[int] = None


@dataclass
class ScheduleEntryDraft:
    """An entry that has not been written to the ledger yet."""
    user_id: int
    team_id: int
    date: date
    shift_type: ShiftType
    created_by: Optional[int] = None
    notes: str = BULK_NOTE
    activity_type: ActivityType = ActivityType.WORK
    availability_status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    time_blocks: list = field(default_factory=list)

    @property
    def slot_key(self):
        return (self.user_id, self.team_id, self.date)

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'team_id': self.team_id,
            'date': self.date.isoformat(),
            'shift_type': self.shift_type.value,
            'activity_type': self.activity_type.value,
            'availability_status': self.availability_status.value,
            'notes': self.notes,
            'time_blocks': self.time_blocks,
        }


@dataclass
class BulkPreview:
    drafts: List[ScheduleEntryDraft]
    conflicts: List[dict]

    def to_dict(self):
        return {
            'drafts': [d.to_dict() for d in self.drafts],
            'conflicts': self.conflicts,
            'total': len(self.drafts),
        }


@dataclass
class BulkCommitResult:
    created: List[dict] = field(default_factory=list)
    updated: List[dict] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)
    conflicts: List[dict] = field(default_factory=list)

    @property
    def written(self):
        return len(self.created) + len(self.updated)

    def to_dict(self):
        return {
            'created': self.created,
            'updated': self.updated,
            'skipped': self.skipped,
            'conflicts': self.conflicts,
        }


def generate_bulk_drafts(config: BulkScheduleConfig, members: Iterable[int],
                         holidays: Iterable[date] = ()) -> List[ScheduleEntryDraft]:
    """
    Expand a bulk configuration into entry drafts.

    Args:
        config: What to generate
        members: Team member ids (used by whole_team, and by rotation when
            config.user_ids is empty)
        holidays: Dates excluded when config.skip_holidays is set

    Returns:
        Drafts ordered by date, then user order
    """
    if config.end_date < config.start_date:
        raise ValidationFailure(
            "End date must not be before start date",
            code='invalid_date_range',
        )

    holiday_dates = set(holidays) if config.skip_holidays else set()
    dates = [
        d for d in days_between(config.start_date, config.end_date, config.skip_weekends)
        if d not in holiday_dates
    ]

    if config.mode == BulkMode.EXPLICIT_USERS:
        users = list(config.user_ids)
    elif config.mode == BulkMode.WHOLE_TEAM:
        users = list(members)
    else:
        users = list(config.user_ids) or list(members)
    users = list(dict.fromkeys(users))

    if not users:
        return []

    blocks = default_time_blocks(config.shift_type)

    def draft(user_id, day, notes):
        return ScheduleEntryDraft(
            user_id=user_id,
            team_id=config.team_id,
            date=day,
            shift_type=config.shift_type,
            created_by=config.created_by,
            notes=notes,
            time_blocks=[dict(b) for b in blocks],
        )

    if config.mode == BulkMode.ROTATION:
        return [draft(users[i % len(users)], day, ROTATION_NOTE) for i, day in enumerate(dates)]

    return [draft(user_id, day, BULK_NOTE) for day in dates for user_id in users]


def _conflict(draft, existing):
    return {
        'user_id': draft.user_id,
        'team_id': draft.team_id,
        'date': draft.date.isoformat(),
        'existing_entry_id': existing.id,
        'existing_activity_type': existing.activity_type.value,
    }


class BulkScheduleService:
    """Preview and commit bulk-generated entries."""

    @staticmethod
    def preview(config: BulkScheduleConfig) -> BulkPreview:
        """Generate drafts and list the slots already taken in the ledger."""
        members = []
        if config.mode == BulkMode.WHOLE_TEAM or (config.mode == BulkMode.ROTATION and not config.user_ids):
            members = Directory.member_ids(config.team_id)
        holidays = ()
        if config.skip_holidays:
            holidays = HolidayCalendar.holiday_dates(config.start_date, config.end_date)

        drafts = generate_bulk_drafts(config, members, holidays)
        existing = {
            e.slot_key: e
            for e in ScheduleLedger.entries_for([config.team_id], config.start_date, config.end_date)
        }
        conflicts = [_conflict(d, existing[d.slot_key]) for d in drafts if d.slot_key in existing]
        return BulkPreview(drafts=drafts, conflicts=conflicts)

    @staticmethod
    def commit(drafts: List[ScheduleEntryDraft], conflict_policy: Optional[str] = None) -> BulkCommitResult:
        """
        Write drafts in a single transaction.

        Args:
            drafts: Drafts from preview (possibly edited by the caller)
            conflict_policy: skip, overwrite or prompt (default: BULK_CONFLICT_POLICY)

        Returns:
            BulkCommitResult

        Raises:
            ValidationFailure: Unknown policy
            ConflictDetected: An overwritten entry changed underneath us
            CollaboratorUnavailable: The ledger write failed (nothing written)
        """
        policy = conflict_policy or current_app.config.get('BULK_CONFLICT_POLICY', 'skip')
        if policy not in CONFLICT_POLICIES:
            raise ValidationFailure(
                f"Unknown conflict policy: {policy}",
                code='invalid_conflict_policy',
                details={'allowed': list(CONFLICT_POLICIES)},
            )

        result = BulkCommitResult()
        seen = set()
        pending = []

        # Re-validate every slot right before writing
        for d in drafts:
            if d.slot_key in seen:
                result.skipped.append({**d.to_dict(), 'reason': 'duplicate_in_batch'})
                continue
            seen.add(d.slot_key)
            existing = ScheduleLedger.find_slot(d.user_id, d.team_id, d.date)
            if existing is not None:
                result.conflicts.append(_conflict(d, existing))
            pending.append((d, existing))

        if policy == 'prompt' and result.conflicts:
            db.session.rollback()
            logger.info("Bulk commit held back: %d conflicts need a decision", len(result.conflicts))
            return result

        try:
            for d, existing in pending:
                if existing is None:
                    entry = ScheduleEntry(
                        user_id=d.user_id,
                        team_id=d.team_id,
                        date=d.date,
                        shift_type=d.shift_type,
                        activity_type=d.activity_type,
                        availability_status=d.availability_status,
                        notes=d.notes,
                        time_blocks=d.time_blocks or default_time_blocks(d.shift_type, d.activity_type),
                        created_by_id=d.created_by,
                    )
                    db.session.add(entry)
                    result.created.append(d.to_dict())
                elif policy == 'overwrite':
                    ok = ScheduleLedger.conditional_update(
                        existing.id, existing.version,
                        shift_type=d.shift_type,
                        activity_type=d.activity_type,
                        availability_status=d.availability_status,
                        notes=d.notes,
                        time_blocks=d.time_blocks or default_time_blocks(d.shift_type, d.activity_type),
                    )
                    if not ok:
                        raise ConflictDetected(
                            "Schedule entry changed during bulk commit",
                            details={'entry_id': existing.id},
                        )
                    result.updated.append({**d.to_dict(), 'entry_id': existing.id})
                else:
                    result.skipped.append({**d.to_dict(), 'reason': 'slot_taken', 'entry_id': existing.id})
            db.session.commit()
        except ConflictDetected:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Bulk commit failed, nothing written: %s", e, exc_info=True)
            raise CollaboratorUnavailable("Schedule ledger unavailable") from e

        logger.info(
            "Bulk commit (%s): %d created, %d updated, %d skipped",
            policy, len(result.created), len(result.updated), len(result.skipped),
        )

        affected = {d['user_id'] for d in result.created + result.updated}
        if affected:
            dispatch(affected, 'Your schedule was updated',
                     message=f"{result.written} entries were added or changed",
                     category=NotificationCategory.SCHEDULE)
        return result

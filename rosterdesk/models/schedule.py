"""
Schedule ledger model and the closed shift/activity enumerations.

Every decision that depends on an activity type reads ACTIVITY_RULES.
The table must classify every ActivityType member; the module refuses to
import otherwise, so a new activity cannot slip past coverage counting,
swap eligibility, impact estimation or rotation conflicts unreviewed.
"""
import enum
from dataclasses import dataclass
from datetime import datetime

from rosterdesk.extensions import db


class ShiftType(enum.Enum):
    """Shift slots a schedule entry can occupy."""
    NORMAL = 'normal'
    EARLY = 'early'
    LATE = 'late'
    WEEKEND = 'weekend'


class ActivityType(enum.Enum):
    """What a person is doing on a scheduled day."""
    WORK = 'work'
    VACATION = 'vacation'
    SICK = 'sick'
    TRAINING = 'training'
    HOTLINE_SUPPORT = 'hotline_support'
    OUT_OF_OFFICE = 'out_of_office'
    WORKING_FROM_HOME = 'working_from_home'
    FLEXTIME = 'flextime'
    OTHER = 'other'


class AvailabilityStatus(enum.Enum):
    AVAILABLE = 'available'
    UNAVAILABLE = 'unavailable'


@dataclass(frozen=True)
class ActivityRule:
    """How one activity type is treated by each decision point."""
    counts_toward_coverage: bool   # daily team coverage analysis
    swappable: bool                # may take part in a shift swap
    counts_for_impact: bool        # partnership shift staffing
    blocks_rotation: bool          # conflicts with an on-call draft


ACTIVITY_RULES = {
    ActivityType.WORK: ActivityRule(True, True, True, False),
    ActivityType.VACATION: ActivityRule(False, False, False, True),
    ActivityType.SICK: ActivityRule(False, False, False, True),
    ActivityType.TRAINING: ActivityRule(False, True, False, False),
    ActivityType.HOTLINE_SUPPORT: ActivityRule(False, True, True, False),
    ActivityType.OUT_OF_OFFICE: ActivityRule(False, False, False, True),
    ActivityType.WORKING_FROM_HOME: ActivityRule(False, True, True, False),
    ActivityType.FLEXTIME: ActivityRule(False, True, False, True),
    ActivityType.OTHER: ActivityRule(False, True, False, True),
}

_unclassified = set(ActivityType) - set(ACTIVITY_RULES)
if _unclassified:
    raise RuntimeError(
        f"ACTIVITY_RULES does not classify: {sorted(a.value for a in _unclassified)}"
    )


def activity_rule(activity_type):
    return ACTIVITY_RULES[activity_type]


def activities_where(predicate):
    """Activity types whose rule satisfies `predicate` (for query filters)."""
    return [a for a, rule in ACTIVITY_RULES.items() if predicate(rule)]


# Default shift times when no explicit time blocks were given
DEFAULT_SHIFT_TIMES = {
    ShiftType.EARLY: ('06:00', '14:30'),
    ShiftType.LATE: ('13:00', '21:30'),
    ShiftType.NORMAL: ('08:00', '16:30'),
    ShiftType.WEEKEND: ('08:00', '16:30'),
}


def default_time_blocks(shift_type, activity_type=ActivityType.WORK):
    start, end = DEFAULT_SHIFT_TIMES[shift_type]
    return [{'activity_type': activity_type.value, 'start_time': start, 'end_time': end}]


class ScheduleEntry(db.Model):
    """One (user, team, date) record in the schedule ledger."""
    __tablename__ = 'schedule_entries'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    date = db.Column(db.Date, nullable=False)

    shift_type = db.Column(db.Enum(ShiftType), nullable=False, default=ShiftType.NORMAL)
    activity_type = db.Column(db.Enum(ActivityType), nullable=False, default=ActivityType.WORK)
    availability_status = db.Column(
        db.Enum(AvailabilityStatus), nullable=False, default=AvailabilityStatus.AVAILABLE
    )

    notes = db.Column(db.Text)
    # [{'activity_type': 'work', 'start_time': 'HH:MM', 'end_time': 'HH:MM'}, ...]
    time_blocks = db.Column(db.JSON, nullable=False, default=list)

    # Optimistic concurrency guard, bumped on every mutation
    version = db.Column(db.Integer, nullable=False, default=1)

    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', foreign_keys=[user_id], backref=db.backref('schedule_entries', lazy='dynamic'))
    team = db.relationship('Team', backref=db.backref('schedule_entries', lazy='dynamic'))
    created_by = db.relationship('User', foreign_keys=[created_by_id])

    __table_args__ = (
        db.Index('ix_schedule_entries_team_date', 'team_id', 'date'),
        db.Index('ix_schedule_entries_user_date', 'user_id', 'date'),
    )

    def __repr__(self):
        return f'<ScheduleEntry user={self.user_id} team={self.team_id} {self.date} {self.activity_type.value}>'

    @property
    def rule(self):
        return ACTIVITY_RULES[self.activity_type]

    @property
    def is_available(self):
        return self.availability_status == AvailabilityStatus.AVAILABLE

    @property
    def is_swappable(self):
        """Swappable while the activity allows it and the person is available."""
        return self.rule.swappable and self.is_available

    @property
    def slot_key(self):
        return (self.user_id, self.team_id, self.date)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'team_id': self.team_id,
            'date': self.date.isoformat(),
            'shift_type': self.shift_type.value,
            'activity_type': self.activity_type.value,
            'availability_status': self.availability_status.value,
            'notes': self.notes,
            'time_blocks': self.time_blocks or [],
            'version': self.version,
        }

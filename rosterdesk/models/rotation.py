"""
On-call (hotline) rotation models: per-team configuration, the eligible
member pool, and draft plans awaiting review.
"""
import enum
from datetime import datetime, time

from sqlalchemy.orm import validates

from rosterdesk.extensions import db


class PlanState(enum.Enum):
    """Workflow state of a rotation plan."""
    DRAFT_GENERATED = 'draft_generated'
    REVIEWED = 'reviewed'
    FINALIZED = 'finalized'   # terminal
    DISCARDED = 'discarded'   # terminal


class DraftStatus(enum.Enum):
    DRAFT = 'draft'
    FINALIZED = 'finalized'


class TieBreak(enum.Enum):
    """How members with equal fairness rank are ordered."""
    SEQUENTIAL = 'sequential'
    RANDOM = 'random'


class RotationTeamConfig(db.Model):
    """Staffing and hours for a team's on-call rotation."""
    __tablename__ = 'rotation_team_config'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False, unique=True)
    min_staff_required = db.Column(db.Integer, nullable=False, default=1)
    weekday_start_time = db.Column(db.Time, nullable=False, default=time(8, 0))
    weekday_end_time = db.Column(db.Time, nullable=False, default=time(15, 0))
    friday_start_time = db.Column(db.Time, nullable=False, default=time(8, 0))
    friday_end_time = db.Column(db.Time, nullable=False, default=time(13, 0))

    team = db.relationship('Team', backref=db.backref('rotation_config', uselist=False))

    def __repr__(self):
        return f'<RotationTeamConfig team={self.team_id} min={self.min_staff_required}>'

    def hours_for(self, day):
        """(start, end) on-call hours for a date; Fridays are shorter."""
        if day.weekday() == 4:
            return self.friday_start_time, self.friday_end_time
        return self.weekday_start_time, self.weekday_end_time


class EligibleMember(db.Model):
    """A team member who may be drafted for on-call duty."""
    __tablename__ = 'rotation_eligible_members'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('team_id', 'user_id', name='uq_rotation_eligible_member'),
    )

    def __repr__(self):
        return f'<EligibleMember team={self.team_id} user={self.user_id}>'


class RotationPlan(db.Model):
    """One generate, review and finalize run over a set of teams."""
    __tablename__ = 'rotation_plans'

    id = db.Column(db.Integer, primary_key=True)
    team_ids = db.Column(db.JSON, nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    state = db.Column(db.Enum(PlanState), nullable=False, default=PlanState.DRAFT_GENERATED)
    tie_break = db.Column(db.Enum(TieBreak), nullable=False, default=TieBreak.SEQUENTIAL)
    seed = db.Column(db.Integer, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    reviewed_at = db.Column(db.DateTime)
    finalized_at = db.Column(db.DateTime)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    drafts = db.relationship(
        'RotationDraftAssignment',
        back_populates='plan',
        cascade='all, delete-orphan',
        order_by='RotationDraftAssignment.date',
    )

    def __repr__(self):
        return f'<RotationPlan {self.id} {self.state.value}>'

    @property
    def is_terminal(self):
        return self.state in (PlanState.FINALIZED, PlanState.DISCARDED)


class RotationDraftAssignment(db.Model):
    """A provisional on-call assignment awaiting review."""
    __tablename__ = 'rotation_draft_assignments'

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(db.Integer, db.ForeignKey('rotation_plans.id', ondelete='CASCADE'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    is_substitute = db.Column(db.Boolean, nullable=False, default=False)
    original_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    status = db.Column(db.Enum(DraftStatus), nullable=False, default=DraftStatus.DRAFT)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    plan = db.relationship('RotationPlan', back_populates='drafts')

    __table_args__ = (
        db.UniqueConstraint('plan_id', 'team_id', 'date', 'user_id', name='uq_rotation_draft_slot'),
        db.CheckConstraint(
            'NOT is_substitute OR original_user_id IS NOT NULL',
            name='ck_rotation_draft_substitute',
        ),
    )

    def __repr__(self):
        return f'<RotationDraftAssignment team={self.team_id} user={self.user_id} {self.date}>'

    @validates('original_user_id')
    def validate_original_user(self, key, value):
        if self.is_substitute and value is None:
            raise ValueError("A substitute draft must name the member it replaces")
        return value

    def to_dict(self):
        return {
            'id': self.id,
            'team_id': self.team_id,
            'user_id': self.user_id,
            'date': self.date.isoformat(),
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
            'is_substitute': self.is_substitute,
            'original_user_id': self.original_user_id,
            'status': self.status.value,
        }

"""
Team directory, capacity requirements and planning partnerships.
"""
from datetime import datetime

from sqlalchemy.orm import validates

from rosterdesk.extensions import db
from rosterdesk.models.schedule import ShiftType


class Team(db.Model):
    """A team whose coverage is planned."""
    __tablename__ = 'teams'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    memberships = db.relationship('TeamMember', back_populates='team', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Team {self.name}>'

    @property
    def member_ids(self):
        return [m.user_id for m in self.memberships]


class TeamMember(db.Model):
    """Membership of a user in a team."""
    __tablename__ = 'team_members'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    is_manager = db.Column(db.Boolean, default=False, nullable=False)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    team = db.relationship('Team', back_populates='memberships')
    user = db.relationship('User', backref=db.backref('team_memberships', lazy='dynamic'))

    __table_args__ = (
        db.UniqueConstraint('team_id', 'user_id', name='uq_team_member'),
    )

    def __repr__(self):
        return f'<TeamMember team={self.team_id} user={self.user_id}>'


class CapacityRequirement(db.Model):
    """Minimum daily staffing for a team.

    `applies_to_weekends` only states that the same minimum still applies on
    Saturdays and Sundays; there is no separate weekend number.
    """
    __tablename__ = 'team_capacity_config'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False, unique=True)
    min_staff_required = db.Column(db.Integer, nullable=False, default=1)
    applies_to_weekends = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = db.relationship('Team', backref=db.backref('capacity', uselist=False, cascade='all, delete-orphan'))

    __table_args__ = (
        db.CheckConstraint('min_staff_required >= 0', name='ck_capacity_min_staff'),
    )

    def __repr__(self):
        return f'<CapacityRequirement team={self.team_id} min={self.min_staff_required}>'


class PlanningPartnership(db.Model):
    """A group of teams sharing coverage requirements and swap eligibility."""
    __tablename__ = 'team_planning_partners'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    team_ids = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    shift_requirements = db.relationship(
        'PartnershipShiftRequirement',
        back_populates='partnership',
        cascade='all, delete-orphan',
    )

    def __repr__(self):
        return f'<PlanningPartnership {self.name} {self.team_ids}>'

    @validates('team_ids')
    def validate_team_ids(self, key, team_ids):
        if not team_ids:
            raise ValueError("A planning partnership needs at least one team")
        return [int(t) for t in team_ids]

    def includes(self, *team_ids):
        """True when every given team is listed in this partnership."""
        listed = set(self.team_ids or [])
        return all(t in listed for t in team_ids)

    def requirement_for(self, shift_type):
        for requirement in self.shift_requirements:
            if requirement.shift_type == shift_type:
                return requirement
        return None


class PartnershipShiftRequirement(db.Model):
    """Staff needed per shift type across a partnership."""
    __tablename__ = 'partnership_shift_requirements'

    id = db.Column(db.Integer, primary_key=True)
    partnership_id = db.Column(
        db.Integer,
        db.ForeignKey('team_planning_partners.id', ondelete='CASCADE'),
        nullable=False,
    )
    shift_type = db.Column(db.Enum(ShiftType), nullable=False)
    staff_required = db.Column(db.Integer, nullable=False, default=1)

    partnership = db.relationship('PlanningPartnership', back_populates='shift_requirements')

    __table_args__ = (
        db.UniqueConstraint('partnership_id', 'shift_type', name='uq_partnership_shift'),
    )

    def __repr__(self):
        return f'<PartnershipShiftRequirement {self.shift_type.value} x{self.staff_required}>'

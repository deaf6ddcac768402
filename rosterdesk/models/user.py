"""
User model for the team/user directory.
Authentication is handled upstream; users here only carry identity,
role and location (for holiday lookups).
"""
from enum import Enum
from datetime import datetime

from rosterdesk.extensions import db


class AccessLevel(str, Enum):
    """Roles that decide who may review and commit schedules."""
    ADMIN = "admin"
    MANAGER = "manager"
    PLANNER = "planner"
    TEAMMEMBER = "teammember"


# Permission hierarchy (lower index = higher access)
ACCESS_HIERARCHY = [
    AccessLevel.ADMIN,
    AccessLevel.MANAGER,
    AccessLevel.PLANNER,
    AccessLevel.TEAMMEMBER,
]


class User(db.Model):
    """A person who can be scheduled."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)

    access_level = db.Column(db.Enum(AccessLevel), default=AccessLevel.TEAMMEMBER, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Location (drives public holiday lookups)
    country_code = db.Column(db.String(2))
    region_code = db.Column(db.String(10))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<User {self.email}>'

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def has_access(self, min_level):
        """Check the user sits at or above `min_level` in the hierarchy."""
        return ACCESS_HIERARCHY.index(self.access_level) <= ACCESS_HIERARCHY.index(min_level)

    @property
    def can_review(self):
        """Managers, planners and admins review swaps and rotations."""
        return self.has_access(AccessLevel.PLANNER)

"""
Shift swap requests between two people (or open offers to anyone eligible).
"""
import enum
from datetime import datetime

from rosterdesk.extensions import db


class SwapStatus(enum.Enum):
    """Lifecycle of a swap request."""
    PENDING = 'pending'       # Awaiting claim (open offer) or review
    APPROVED = 'approved'     # Entries exchanged
    REJECTED = 'rejected'     # Declined by a reviewer
    CANCELLED = 'cancelled'   # Withdrawn by the requester


TERMINAL_SWAP_STATUSES = (SwapStatus.APPROVED, SwapStatus.REJECTED, SwapStatus.CANCELLED)


class SwapRequest(db.Model):
    """A request to exchange two schedule entries on the same date."""
    __tablename__ = 'shift_swap_requests'

    id = db.Column(db.Integer, primary_key=True)

    requesting_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    requesting_entry_id = db.Column(
        db.Integer, db.ForeignKey('schedule_entries.id', ondelete='CASCADE'), nullable=False
    )

    # Empty until an open offer is claimed
    target_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=True)
    target_entry_id = db.Column(
        db.Integer, db.ForeignKey('schedule_entries.id', ondelete='SET NULL'), nullable=True
    )

    swap_date = db.Column(db.Date, nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    status = db.Column(db.Enum(SwapStatus), nullable=False, default=SwapStatus.PENDING)
    is_open_offer = db.Column(db.Boolean, nullable=False, default=False)
    reason = db.Column(db.Text)

    # Review
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    review_notes = db.Column(db.Text)

    # Optimistic concurrency guard
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    requesting_user = db.relationship('User', foreign_keys=[requesting_user_id])
    target_user = db.relationship('User', foreign_keys=[target_user_id])
    reviewed_by = db.relationship('User', foreign_keys=[reviewed_by_id])

    __table_args__ = (
        db.CheckConstraint(
            'target_user_id IS NULL OR target_user_id != requesting_user_id',
            name='ck_swap_different_users',
        ),
        db.Index('ix_swap_requests_date_status', 'swap_date', 'status'),
    )

    def __repr__(self):
        return f'<SwapRequest {self.id} {self.status.value} {self.swap_date}>'

    @property
    def is_pending(self):
        return self.status == SwapStatus.PENDING

    @property
    def is_claimed(self):
        return not self.is_open_offer and self.target_user_id is not None

    @property
    def involved_user_ids(self):
        return {u for u in (self.requesting_user_id, self.target_user_id) if u is not None}

    def to_dict(self):
        return {
            'id': self.id,
            'requesting_user_id': self.requesting_user_id,
            'requesting_entry_id': self.requesting_entry_id,
            'target_user_id': self.target_user_id,
            'target_entry_id': self.target_entry_id,
            'swap_date': self.swap_date.isoformat(),
            'team_id': self.team_id,
            'status': self.status.value,
            'is_open_offer': self.is_open_offer,
            'reason': self.reason,
            'reviewed_by_id': self.reviewed_by_id,
            'reviewed_at': self.reviewed_at.isoformat() if self.reviewed_at else None,
            'review_notes': self.review_notes,
        }

"""
Notification model for in-app notifications.
"""
from datetime import datetime
from rosterdesk.extensions import db


class NotificationType:
    """Notification severities."""
    INFO = 'info'
    SUCCESS = 'success'
    WARNING = 'warning'
    ERROR = 'error'


class NotificationCategory:
    """Notification categories."""
    SWAP = 'swap'
    SCHEDULE = 'schedule'
    ROTATION = 'rotation'
    SYSTEM = 'system'


class Notification(db.Model):
    """An in-app notification for one user."""
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    type = db.Column(db.String(20), default=NotificationType.INFO)
    category = db.Column(db.String(50), default=NotificationCategory.SYSTEM)

    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text)
    link = db.Column(db.String(500))

    is_read = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    read_at = db.Column(db.DateTime)

    user = db.relationship('User', backref=db.backref('notifications', lazy='dynamic',
                                                       order_by='Notification.created_at.desc()'))

    def __repr__(self):
        return f'<Notification {self.id}: {self.title[:30]}>'

    def mark_as_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = datetime.utcnow()
            db.session.commit()

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'category': self.category,
            'title': self.title,
            'message': self.message,
            'link': self.link,
            'is_read': self.is_read,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'read_at': self.read_at.isoformat() if self.read_at else None
        }

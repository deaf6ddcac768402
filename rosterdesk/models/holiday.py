"""
Holiday calendar rows (imported upstream, read-only here).
"""
from datetime import datetime

from rosterdesk.extensions import db


class Holiday(db.Model):
    """A public or regional holiday."""
    __tablename__ = 'holidays'

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    country_code = db.Column(db.String(2), nullable=True)
    region_code = db.Column(db.String(10), nullable=True)  # None = national
    is_public = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Holiday {self.date} {self.name}>'

    def applies_to(self, country_code, region_code=None):
        """True when the holiday is observed at the given location."""
        if self.country_code is None:
            return True
        if self.country_code != country_code:
            return False
        return self.region_code is None or self.region_code == region_code

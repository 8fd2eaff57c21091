"""
Booking rows: the spend events the loyalty engine reads.

Bookings are written by the scheduling side of the platform. Here they
are only read, either to award points for a completed visit or to feed
the dashboard aggregations.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class BookingStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no_show'


class Booking(db.Model):
    """A scheduled or completed appointment."""
    __tablename__ = 'bookings'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey('profiles.id'), index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey('branches.id'), index=True)
    treatment_id = db.Column(db.Integer, db.ForeignKey('treatments.id'))
    therapist_id = db.Column(db.Integer, db.ForeignKey('therapists.id'))
    # Set when someone other than the scheduled therapist did the treatment
    actual_therapist_id = db.Column(db.Integer, db.ForeignKey('therapists.id'))

    booking_date = db.Column(db.DateTime, nullable=False, index=True)
    total_price = db.Column(db.Numeric(12, 2), default=0)
    status = db.Column(db.String(20), default=BookingStatus.PENDING.value, nullable=False)
    payment_status = db.Column(db.String(20))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    customer = db.relationship('Profile', foreign_keys=[user_id])
    treatment = db.relationship('Treatment')

    @property
    def category(self):
        return self.treatment.category if self.treatment else None

    @property
    def performed_by(self):
        """Therapist who actually did the work."""
        return self.actual_therapist_id or self.therapist_id

    @property
    def normalized_status(self) -> str:
        return (self.status or '').strip().lower()

    @property
    def is_completed(self) -> bool:
        return self.normalized_status == BookingStatus.COMPLETED.value

    @property
    def is_paid(self) -> bool:
        return (self.payment_status or '').lower() == 'paid' or self.is_completed

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'branch_id': self.branch_id,
            'treatment_id': self.treatment_id,
            'therapist_id': self.therapist_id,
            'actual_therapist_id': self.actual_therapist_id,
            'booking_date': self.booking_date.isoformat() if self.booking_date else None,
            'total_price': float(self.total_price or 0),
            'status': self.status,
            'payment_status': self.payment_status,
            'category': self.category,
        }

    def __repr__(self):
        return f'<Booking {self.id} {self.status}>'

"""
Identity and catalogue rows owned by the hosted schema.

Profiles mirror the identity provider's users (string ids). Branches,
treatments and therapists are read-only reference data for the loyalty
engine.
"""
from datetime import datetime
from ..extensions import db


class Profile(db.Model):
    """A customer or staff member known to the identity provider."""
    __tablename__ = 'profiles'

    id = db.Column(db.String(64), primary_key=True)
    full_name = db.Column(db.String(200))
    email = db.Column(db.String(255), index=True)
    phone = db.Column(db.String(50))
    role = db.Column(db.String(30), default='customer', nullable=False)
    avatar_url = db.Column(db.String(500))

    # Legacy preference map and its more specific replacement
    preferences = db.Column(db.JSON)
    notification_settings = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'avatar_url': self.avatar_url,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Profile {self.id}>'


class Branch(db.Model):
    """A physical spa location."""
    __tablename__ = 'branches'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255))

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'address': self.address}


class Treatment(db.Model):
    __tablename__ = 'treatments'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    category = db.Column(db.String(80))
    price = db.Column(db.Numeric(12, 2))
    duration_minutes = db.Column(db.Integer)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'price': float(self.price) if self.price is not None else None,
            'duration_minutes': self.duration_minutes,
        }


class Therapist(db.Model):
    __tablename__ = 'therapists'

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.String(64), db.ForeignKey('profiles.id'))
    branch_id = db.Column(db.Integer, db.ForeignKey('branches.id'))
    is_active = db.Column(db.Boolean, default=True)

    profile = db.relationship('Profile')

    @property
    def name(self):
        if self.profile and self.profile.full_name:
            return self.profile.full_name
        return f'Therapist {self.id}'

    def to_dict(self):
        return {
            'id': self.id,
            'profile_id': self.profile_id,
            'branch_id': self.branch_id,
            'name': self.name,
            'is_active': self.is_active,
        }

"""
Loyalty members and tier definitions.

A Member row holds the denormalized balances for one customer. The
authoritative balance is the sum of that member's points history; the
stored figure is checked against it by PointsService.verify_balance().
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import validates
from ..extensions import db
from ..utils.exceptions import ValidationError


class Member(db.Model):
    """A customer enrolled in the loyalty program."""
    __tablename__ = 'member_points'
    __table_args__ = (
        db.CheckConstraint('total_points >= 0', name='total_points_non_negative'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey('profiles.id'), unique=True, nullable=False)

    total_points = db.Column(db.Integer, default=0, nullable=False)
    lifetime_points = db.Column(db.Integer, default=0, nullable=False)
    stamps = db.Column(db.Integer, default=0, nullable=False)
    tier = db.Column(db.String(50), default='Grace', nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    profile = db.relationship('Profile', backref=db.backref('membership', uselist=False))

    def __init__(self, **kwargs):
        kwargs.setdefault('total_points', 0)
        kwargs.setdefault('lifetime_points', 0)
        kwargs.setdefault('stamps', 0)
        kwargs.setdefault('tier', 'Grace')
        super().__init__(**kwargs)

    @validates('total_points', 'lifetime_points', 'stamps')
    def validate_balance(self, key, value):
        if value is None or int(value) < 0:
            raise ValidationError(f'{key} cannot be negative', key)
        return int(value)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'full_name': self.profile.full_name if self.profile else None,
            'total_points': self.total_points,
            'lifetime_points': self.lifetime_points,
            'stamps': self.stamps,
            'tier': self.tier,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Member {self.user_id} {self.tier} {self.total_points}pts>'


class MemberTier(db.Model):
    """
    Benefit bundle attached to a tier name.

    upgrade_requirement is the spend needed to reach the tier;
    maintain_requirement only applies to the highest tier.
    """
    __tablename__ = 'member_tiers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)

    min_points = db.Column(db.Integer, default=0)
    multiplier = db.Column(db.Numeric(4, 2), default=Decimal('1.00'))
    expiry = db.Column(db.Integer, default=12)  # months
    upgrade_requirement = db.Column(db.Numeric(14, 2))
    maintain_requirement = db.Column(db.Numeric(14, 2))

    # Benefits
    auto_reward = db.Column(db.String(200))
    cashback = db.Column(db.Numeric(5, 2), default=Decimal('0'))
    stamp_program = db.Column(db.Boolean, default=False)
    double_stamp_weekday = db.Column(db.Boolean, default=False)
    double_stamp_event = db.Column(db.Boolean, default=False)
    priority_booking = db.Column(db.Boolean, default=False)
    free_rewards = db.Column(db.JSON)

    description = db.Column(db.Text)
    customer_profile = db.Column(db.Text)
    color = db.Column(db.String(20))
    is_active = db.Column(db.Boolean, default=True)

    def __init__(self, **kwargs):
        kwargs.setdefault('multiplier', Decimal('1.00'))
        kwargs.setdefault('is_active', True)
        super().__init__(**kwargs)

    @validates('upgrade_requirement', 'maintain_requirement', 'cashback')
    def validate_amount(self, key, value):
        if value is None:
            return None
        value = Decimal(str(value))
        if value < 0:
            raise ValidationError(f'{key} cannot be negative', key)
        return value

    @validates('multiplier')
    def validate_multiplier(self, key, value):
        value = Decimal(str(value if value is not None else '1'))
        if value <= 0:
            raise ValidationError('multiplier must be positive', key)
        return value

    def benefits(self):
        return {
            'multiplier': float(self.multiplier or 1),
            'cashback': float(self.cashback or 0),
            'auto_reward': self.auto_reward,
            'stamp_program': bool(self.stamp_program),
            'double_stamp_weekday': bool(self.double_stamp_weekday),
            'double_stamp_event': bool(self.double_stamp_event),
            'priority_booking': bool(self.priority_booking),
            'free_rewards': list(self.free_rewards or []),
            'expiry': self.expiry,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'sort_order': self.sort_order,
            'min_points': self.min_points,
            'upgrade_requirement': float(self.upgrade_requirement) if self.upgrade_requirement is not None else None,
            'maintain_requirement': float(self.maintain_requirement) if self.maintain_requirement is not None else None,
            'benefits': self.benefits(),
            'description': self.description,
            'customer_profile': self.customer_profile,
            'color': self.color,
            'is_active': self.is_active,
        }

    def __repr__(self):
        return f'<MemberTier {self.name}>'


DEFAULT_TIERS = [
    {
        'name': 'Grace',
        'sort_order': 0,
        'multiplier': Decimal('1.00'),
        'upgrade_requirement': Decimal('0'),
        'cashback': Decimal('0'),
        'free_rewards': ['Birthday treat'],
        'description': 'Welcome tier for every member.',
        'color': '#C1A7A3',
    },
    {
        'name': 'Signature',
        'sort_order': 1,
        'multiplier': Decimal('1.25'),
        'upgrade_requirement': Decimal('5000000'),
        'cashback': Decimal('2'),
        'stamp_program': True,
        'free_rewards': ['Birthday treat', 'Hair spa upgrade'],
        'description': 'For regular guests.',
        'color': '#7C8B95',
    },
    {
        'name': 'Elite',
        'sort_order': 2,
        'multiplier': Decimal('1.50'),
        'upgrade_requirement': Decimal('15000000'),
        'maintain_requirement': Decimal('12000000'),
        'cashback': Decimal('5'),
        'stamp_program': True,
        'double_stamp_weekday': True,
        'priority_booking': True,
        'free_rewards': ['Birthday treat', 'Hair spa upgrade', 'Signature massage'],
        'description': 'Our most loyal guests.',
        'color': '#8BA88E',
    },
]


def seed_default_tiers():
    """Install Grace, Signature and Elite if missing. Returns the number created."""
    created = 0
    for data in DEFAULT_TIERS:
        if MemberTier.query.filter_by(name=data['name']).first():
            continue
        db.session.add(MemberTier(**data))
        created += 1
    db.session.commit()
    return created

"""
Point rules, rewards and the two append-only loyalty logs.

- PointRule: condition-to-points mapping consulted when a booking completes
- Reward: catalogue item redeemable for points or stamps
- RewardRedemption: one claim of one reward by one member
- PointsHistory: signed ledger line; a member's balance is the sum of these
- RecordedBooking: marks a booking as credited, at most once
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy.orm import validates
from ..extensions import db
from ..utils.exceptions import ValidationError


WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


class RuleType(str, Enum):
    GENERAL = 'general'
    CATEGORY = 'category'
    TREATMENT = 'treatment'
    DAY = 'day'


class RewardMethod(str, Enum):
    POINT = 'Point'
    STAMP = 'Stamp'


class HistoryType(str, Enum):
    EARNED = 'earned'
    REDEEMED = 'redeemed'
    ADJUSTMENT = 'adjustment'


def _is_active(status) -> bool:
    return (status or '').strip().lower() == 'active'


def _as_int(value, key) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a whole number', key)


class PointRule(db.Model):
    """
    Points awarded per qualifying spend unit.

    Only the scope field matching rule_type is meaningful: a category rule
    names one category, a treatment rule one or more treatment ids, a day
    rule one or more weekday names.
    """
    __tablename__ = 'point_rules'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120))
    spend_amount = db.Column(db.Numeric(14, 2), nullable=False)
    point_earned = db.Column(db.Integer, nullable=False)
    expiry = db.Column(db.Integer, default=12, nullable=False)  # months
    status = db.Column(db.String(20), default='Active', nullable=False)
    welcome_point = db.Column(db.Integer)

    rule_type = db.Column(db.String(20), default=RuleType.GENERAL.value, nullable=False)
    category = db.Column(db.String(80))
    days = db.Column(db.JSON)
    treatments = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault('status', 'Active')
        kwargs.setdefault('rule_type', RuleType.GENERAL.value)
        kwargs.setdefault('expiry', 12)
        super().__init__(**kwargs)
        for required in ('spend_amount', 'point_earned'):
            if getattr(self, required) is None:
                raise ValidationError(f'{required} is required', required)
        self.validate_scope()

    @property
    def is_active(self) -> bool:
        return _is_active(self.status)

    @validates('spend_amount')
    def validate_spend_amount(self, key, value):
        if value is None:
            raise ValidationError('spend_amount is required', key)
        try:
            value = Decimal(str(value))
        except ArithmeticError:
            raise ValidationError('spend_amount must be a number', key)
        if value <= 0:
            raise ValidationError('spend_amount must be greater than zero', key)
        return value

    @validates('point_earned', 'expiry', 'welcome_point')
    def validate_non_negative(self, key, value):
        if value is None:
            if key == 'welcome_point':
                return None
            raise ValidationError(f'{key} is required', key)
        if _as_int(value, key) < 0:
            raise ValidationError(f'{key} cannot be negative', key)
        return _as_int(value, key)

    @validates('rule_type')
    def validate_rule_type(self, key, value):
        try:
            return RuleType((value or '').lower()).value
        except ValueError:
            raise ValidationError(f'Unknown rule type: {value}', key)

    @validates('days')
    def validate_days(self, key, value):
        if value is None:
            return None
        days = [str(day).strip().lower() for day in value]
        unknown = [day for day in days if day not in WEEKDAYS]
        if unknown:
            raise ValidationError(f'Unknown weekday(s): {", ".join(unknown)}', key)
        return days

    @validates('treatments')
    def validate_treatments(self, key, value):
        if value is None:
            return None
        return [str(treatment_id) for treatment_id in value]

    def validate_scope(self):
        """Check that the scope data required by rule_type is present."""
        if self.rule_type == RuleType.CATEGORY.value and not (self.category or '').strip():
            raise ValidationError('A category rule must name a category', 'category')
        if self.rule_type == RuleType.TREATMENT.value and not self.treatments:
            raise ValidationError('A treatment rule must list at least one treatment', 'treatments')
        if self.rule_type == RuleType.DAY.value and not self.days:
            raise ValidationError('A day rule must list at least one weekday', 'days')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'spend_amount': float(self.spend_amount),
            'point_earned': self.point_earned,
            'expiry': self.expiry,
            'status': self.status,
            'welcome_point': self.welcome_point,
            'rule_type': self.rule_type,
            'category': self.category,
            'days': self.days or [],
            'treatments': self.treatments or [],
        }

    def __repr__(self):
        return f'<PointRule {self.id} {self.rule_type}>'


class Reward(db.Model):
    """A catalogue item members redeem with points or stamps."""
    __tablename__ = 'rewards'
    __table_args__ = (
        db.CheckConstraint('quota IS NULL OR usage_count <= quota', name='usage_within_quota'),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    method = db.Column(db.String(10), default=RewardMethod.POINT.value, nullable=False)
    required = db.Column(db.Integer, nullable=False)  # cost in points or stamps
    claim_type = db.Column(db.String(50))
    auto_reward = db.Column(db.Boolean, default=False)
    min_point = db.Column(db.Integer)
    expiry = db.Column(db.Date)
    category = db.Column(db.String(80))
    image_url = db.Column(db.String(500))

    quota = db.Column(db.Integer)  # None = unlimited
    usage_count = db.Column(db.Integer, default=0, nullable=False)
    status = db.Column(db.String(20), default='Active', nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault('method', RewardMethod.POINT.value)
        kwargs.setdefault('usage_count', 0)
        kwargs.setdefault('status', 'Active')
        super().__init__(**kwargs)
        if not (self.name or '').strip():
            raise ValidationError('name is required', 'name')
        if self.required is None:
            raise ValidationError('required cost is required', 'required')
        if self.quota is not None and self.usage_count > self.quota:
            raise ValidationError('usage_count cannot exceed quota', 'usage_count')

    @property
    def is_active(self) -> bool:
        return _is_active(self.status)

    @property
    def remaining_quantity(self):
        if self.quota is None:
            return None
        return max(0, self.quota - (self.usage_count or 0))

    @validates('method')
    def validate_method(self, key, value):
        for method in RewardMethod:
            if (value or '').lower() == method.value.lower():
                return method.value
        raise ValidationError(f'Reward method must be Point or Stamp, got {value}', key)

    @validates('required')
    def validate_required(self, key, value):
        if value is None or _as_int(value, key) < 0:
            raise ValidationError('required cost must be zero or more', key)
        return _as_int(value, key)

    @validates('quota', 'min_point', 'usage_count')
    def validate_counts(self, key, value):
        if value is None:
            if key == 'usage_count':
                return 0
            return None
        if _as_int(value, key) < 0:
            raise ValidationError(f'{key} cannot be negative', key)
        return _as_int(value, key)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'method': self.method,
            'required': self.required,
            'claim_type': self.claim_type,
            'auto_reward': bool(self.auto_reward),
            'min_point': self.min_point,
            'expiry': self.expiry.isoformat() if self.expiry else None,
            'category': self.category,
            'image_url': self.image_url,
            'quota': self.quota,
            'usage_count': self.usage_count,
            'remaining_quantity': self.remaining_quantity,
            'status': self.status,
        }

    def __repr__(self):
        return f'<Reward {self.id} {self.name}>'


class RewardRedemption(db.Model):
    """Append-only record of one reward claim. Deleted only by a program reset."""
    __tablename__ = 'reward_redemptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey('profiles.id'), nullable=False, index=True)
    reward_id = db.Column(db.Integer, db.ForeignKey('rewards.id'), nullable=False)
    points_spent = db.Column(db.Integer, default=0, nullable=False)
    method = db.Column(db.String(10), default=RewardMethod.POINT.value)
    status = db.Column(db.String(20), default='completed')
    redeemed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    reward = db.relationship('Reward')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'reward_id': self.reward_id,
            'reward_name': self.reward.name if self.reward else None,
            'points_spent': self.points_spent,
            'method': self.method,
            'status': self.status,
            'redeemed_at': self.redeemed_at.isoformat() if self.redeemed_at else None,
        }


class PointsHistory(db.Model):
    """
    Signed points ledger line.

    Earned lines carry the expiry horizon of the rule that produced them.
    reference_id ties earned lines to the booking that produced them so the
    same booking is never credited twice.
    """
    __tablename__ = 'points_history'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey('profiles.id'), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(20), nullable=False)
    description = db.Column(db.String(255))
    reference_id = db.Column(db.String(64), index=True)
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    @validates('type')
    def validate_type(self, key, value):
        try:
            return HistoryType((value or '').lower()).value
        except ValueError:
            raise ValidationError(f'Unknown history type: {value}', key)

    @validates('points')
    def validate_points(self, key, value):
        if value is None:
            raise ValidationError('points is required', key)
        return _as_int(value, key)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'points': self.points,
            'type': self.type,
            'description': self.description,
            'reference_id': self.reference_id,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class RecordedBooking(db.Model):
    """
    One row per booking that has been credited.

    The unique booking_id makes a second credit of the same booking fail
    at commit, even when two requests pass the history check together.
    """
    __tablename__ = 'recorded_bookings'

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id'), nullable=False, unique=True)
    user_id = db.Column(db.String(64), db.ForeignKey('profiles.id'), nullable=False)
    points = db.Column(db.Integer, nullable=False, default=0)
    recorded_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

"""
Points evaluation for a single completed spend event.

Pure functions only: callers load the rules and persist the result.

Every active rule whose scope matches the event contributes
floor(spend / rule.spend_amount) * rule.point_earned. Rules stack; there
is no precedence between a general rule and a scoped rule covering the
same visit. A first-time member also receives the largest welcome_point
defined on any active rule.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from ..models.loyalty import PointRule, RuleType
from ..utils.exceptions import ValidationError


@dataclass
class SpendEvent:
    """What the evaluator needs to know about one visit."""
    amount: Decimal
    spent_at: datetime
    category: Optional[str] = None
    treatment_id: Optional[str] = None
    first_transaction: bool = False

    def __post_init__(self):
        if self.amount is None:
            raise ValidationError('Spend amount is required', 'amount')
        self.amount = Decimal(str(self.amount))
        if self.amount < 0:
            raise ValidationError('Spend amount cannot be negative', 'amount')
        if self.spent_at is None:
            raise ValidationError('Spend timestamp is required', 'spent_at')
        if self.treatment_id is not None:
            self.treatment_id = str(self.treatment_id)

    @classmethod
    def from_booking(cls, booking, first_transaction: bool = False) -> 'SpendEvent':
        return cls(
            amount=booking.total_price or Decimal('0'),
            spent_at=booking.booking_date,
            category=booking.category,
            treatment_id=booking.treatment_id,
            first_transaction=first_transaction,
        )


@dataclass
class PointBatch:
    """Points granted by one rule, lapsing at expires_at."""
    points: int
    expires_at: datetime
    rule_id: Optional[int] = None
    welcome_bonus: bool = False


@dataclass
class PointAward:
    batches: List[PointBatch] = field(default_factory=list)

    @property
    def rule_points(self) -> int:
        return sum(b.points for b in self.batches if not b.welcome_bonus)

    @property
    def welcome_points(self) -> int:
        return sum(b.points for b in self.batches if b.welcome_bonus)

    @property
    def total(self) -> int:
        return self.rule_points + self.welcome_points


def rule_matches(rule: PointRule, event: SpendEvent) -> bool:
    """True if the rule's scope covers the event. General rules always match."""
    if rule.rule_type == RuleType.CATEGORY.value:
        return bool(event.category) and (
            rule.category.strip().lower() == event.category.strip().lower()
        )
    if rule.rule_type == RuleType.TREATMENT.value:
        return event.treatment_id is not None and event.treatment_id in (rule.treatments or [])
    if rule.rule_type == RuleType.DAY.value:
        return event.spent_at.strftime('%A').lower() in (rule.days or [])
    return True


def points_for_rule(rule: PointRule, amount: Decimal) -> int:
    """floor(amount / spend_amount) * point_earned."""
    units = int(Decimal(str(amount)) // rule.spend_amount)
    return units * rule.point_earned


def evaluate_spend(
    event: SpendEvent,
    rules: Iterable[PointRule],
    now: Optional[datetime] = None,
) -> PointAward:
    """
    Compute the points one spend event earns.

    Args:
        event: the completed spend
        rules: all point rules; inactive ones are ignored
        now: reference time for expiry horizons (defaults to utcnow)

    Returns:
        PointAward with one batch per awarding rule, plus a welcome bonus
        batch for first-time members.
    """
    now = now or datetime.utcnow()
    active = [rule for rule in rules if rule.is_active]
    award = PointAward()

    for rule in active:
        if not rule_matches(rule, event):
            continue
        points = points_for_rule(rule, event.amount)
        if points > 0:
            award.batches.append(PointBatch(
                points=points,
                expires_at=now + relativedelta(months=rule.expiry),
                rule_id=rule.id,
            ))

    if event.first_transaction:
        bonus_rule = welcome_rule(active)
        if bonus_rule is not None:
            award.batches.append(PointBatch(
                points=bonus_rule.welcome_point,
                expires_at=now + relativedelta(months=bonus_rule.expiry),
                rule_id=bonus_rule.id,
                welcome_bonus=True,
            ))

    return award


def welcome_rule(rules: Iterable[PointRule]) -> Optional[PointRule]:
    """The rule carrying the largest positive welcome_point, first one on ties."""
    best = None
    for rule in rules:
        if not rule.welcome_point:
            continue
        if best is None or rule.welcome_point > best.welcome_point:
            best = rule
    return best

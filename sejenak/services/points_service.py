"""
Points Service for Sejenak.

Records points for completed bookings, handles manual adjustments,
checks stored balances against the points history, and manages the
point rule catalogue.
"""
import logging
import warnings
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Booking, HistoryType, Member, MemberTier, PointRule, PointsHistory, RecordedBooking
from ..utils.exceptions import (
    DataUnavailableError,
    InconsistentStateWarning,
    MemberNotFoundError,
    NotFoundError,
    ValidationError,
)
from .points_ledger import SpendEvent, evaluate_spend
from .storage import commit_or_raise
from .tier_service import TierService

logger = logging.getLogger(__name__)


@dataclass
class PointsResult:
    """Outcome of recording one booking."""
    user_id: str
    booking_id: int
    points_awarded: int = 0
    welcome_bonus: int = 0
    balance: int = 0
    tier: Optional[str] = None
    tier_changed: bool = False
    first_transaction: bool = False
    already_recorded: bool = False
    entries: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


@dataclass
class BalanceCheck:
    user_id: str
    stored_balance: int
    history_balance: int

    @property
    def consistent(self) -> bool:
        return self.stored_balance == self.history_balance

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'stored_balance': self.stored_balance,
            'history_balance': self.history_balance,
            'consistent': self.consistent,
        }


def booking_reference(booking_id) -> str:
    return f'booking:{booking_id}'


class PointsService:
    """Service for earning, adjusting and auditing member points."""

    RULE_FIELDS = (
        'name', 'spend_amount', 'point_earned', 'expiry', 'status', 'welcome_point',
        'rule_type', 'category', 'days', 'treatments',
    )

    def __init__(self, tier_service: TierService = None):
        self.tier_service = tier_service or TierService()

    # ==================== Earning ====================

    def record_completed_booking(self, booking_id: int, now: datetime = None) -> PointsResult:
        """
        Award points for a completed booking.

        The member row is created on the first qualifying booking. Each
        awarding rule gets its own history line so its expiry can be
        tracked; the welcome bonus gets one more. Balances, history and the
        tier change are committed together.

        Raises:
            ValidationError: booking not completed or has no customer
            NotFoundError: unknown booking
            DataUnavailableError: storage failure (nothing is written)
        """
        if booking_id is None:
            raise ValidationError('booking_id is required', 'booking_id')

        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError('Booking', booking_id)
        if not booking.is_completed:
            raise ValidationError('Only completed bookings earn points', 'status')
        if not booking.user_id:
            raise ValidationError('Booking has no customer', 'user_id')

        user_id = booking.user_id
        reference = booking_reference(booking.id)
        result = PointsResult(user_id=user_id, booking_id=booking.id)

        if self._find_recorded(booking.id):
            return self._already_recorded(result)

        try:
            member = Member.query.filter_by(user_id=user_id).first()
            if member is None:
                member = Member(user_id=user_id, tier=self.tier_service.lowest_tier_name())
                db.session.add(member)
                first_transaction = True
            else:
                first_transaction = not PointsHistory.query.filter_by(
                    user_id=user_id, type=HistoryType.EARNED.value
                ).first()

            rules = PointRule.query.order_by(PointRule.id).all()
            award = evaluate_spend(
                SpendEvent.from_booking(booking, first_transaction=first_transaction),
                rules,
                now=now,
            )
            multiplier = self._tier_multiplier(member.tier)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to load loyalty data for booking {booking_id}: {e}')
            raise DataUnavailableError('Could not load loyalty data', e) from e

        result.first_transaction = first_transaction
        total = 0
        for batch in award.batches:
            points = batch.points
            if not batch.welcome_bonus:
                points = int((Decimal(points) * multiplier).to_integral_value(rounding=ROUND_FLOOR))
            if points <= 0:
                continue
            description = 'Welcome bonus' if batch.welcome_bonus else f'Booking #{booking.id}'
            entry = PointsHistory(
                user_id=user_id,
                points=points,
                type=HistoryType.EARNED.value,
                description=description,
                reference_id=reference,
                expires_at=batch.expires_at,
                created_at=now or datetime.utcnow(),
            )
            db.session.add(entry)
            result.entries.append({
                'points': points,
                'rule_id': batch.rule_id,
                'welcome_bonus': batch.welcome_bonus,
                'expires_at': batch.expires_at.isoformat(),
            })
            total += points
            if batch.welcome_bonus:
                result.welcome_bonus += points

        if total == 0:
            db.session.rollback()
            existing = Member.query.filter_by(user_id=user_id).first()
            result.balance = existing.total_points if existing else 0
            result.tier = existing.tier if existing else None
            logger.info(f'Booking {booking.id} earned no points for {user_id}')
            return result

        member.total_points = (member.total_points or 0) + total
        member.lifetime_points = (member.lifetime_points or 0) + total
        result.tier_changed = self.tier_service.apply_tier(member)
        db.session.add(RecordedBooking(booking_id=booking.id, user_id=user_id, points=total))
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            if self._find_recorded(booking.id) is None:
                logger.error(f'Failed to record points for booking {booking.id}: {e}')
                raise DataUnavailableError(f'Could not record points for booking {booking.id}', e) from e
            logger.warning(f'Booking {booking.id} was credited by a concurrent request')
            return self._already_recorded(PointsResult(user_id=user_id, booking_id=booking.id))
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to record points for booking {booking.id}: {e}')
            raise DataUnavailableError(f'Could not record points for booking {booking.id}', e) from e

        result.points_awarded = total
        result.balance = member.total_points
        result.tier = member.tier
        logger.info(
            f'Recorded {total} points for {user_id} from booking {booking.id} '
            f'(welcome bonus {result.welcome_bonus}, balance {member.total_points})'
        )
        return result

    def _find_recorded(self, booking_id) -> Optional[RecordedBooking]:
        return RecordedBooking.query.filter_by(booking_id=booking_id).first()

    def _already_recorded(self, result: PointsResult) -> PointsResult:
        member = Member.query.filter_by(user_id=result.user_id).first()
        result.already_recorded = True
        result.balance = member.total_points if member else 0
        result.tier = member.tier if member else None
        return result

    def _tier_multiplier(self, tier_name: str) -> Decimal:
        tier = MemberTier.query.filter_by(name=tier_name).first() if tier_name else None
        if tier is None or tier.multiplier is None:
            return Decimal('1')
        return Decimal(tier.multiplier)

    # ==================== Adjustments ====================

    def adjust_points(self, user_id: str, delta: int, reason: str) -> Member:
        """
        Manually add or remove points.

        Raises:
            ValidationError: zero delta, missing reason, or negative result
            MemberNotFoundError: unknown member
        """
        try:
            delta = int(delta)
        except (TypeError, ValueError):
            raise ValidationError('points must be a whole number', 'points')
        if delta == 0:
            raise ValidationError('points cannot be zero', 'points')
        if not (reason or '').strip():
            raise ValidationError('reason is required', 'reason')

        member = Member.query.filter_by(user_id=user_id).first()
        if not member:
            raise MemberNotFoundError(user_id)
        if member.total_points + delta < 0:
            raise ValidationError(
                f'Adjustment would make the balance negative (balance {member.total_points})',
                'points'
            )

        member.total_points = member.total_points + delta
        if delta > 0:
            member.lifetime_points = member.lifetime_points + delta
        db.session.add(PointsHistory(
            user_id=user_id,
            points=delta,
            type=HistoryType.ADJUSTMENT.value,
            description=reason.strip(),
        ))
        commit_or_raise(f'adjust points for {user_id}')
        logger.info(f'Adjusted {user_id} by {delta} points: {reason}')
        return member

    # ==================== Balance audit ====================

    def history_balance(self, user_id: str) -> int:
        total = db.session.query(
            func.coalesce(func.sum(PointsHistory.points), 0)
        ).filter(PointsHistory.user_id == user_id).scalar()
        return int(total or 0)

    def verify_balance(self, user_id: str) -> BalanceCheck:
        """Compare the stored balance with the history sum since the last reset."""
        member = Member.query.filter_by(user_id=user_id).first()
        if not member:
            raise MemberNotFoundError(user_id)
        try:
            check = BalanceCheck(user_id, member.total_points, self.history_balance(user_id))
        except SQLAlchemyError as e:
            raise DataUnavailableError('Could not read points history', e) from e
        if not check.consistent:
            self._report_inconsistency(check)
        return check

    def verify_all_balances(self) -> List[BalanceCheck]:
        """Check every member. Returns only the inconsistent ones."""
        try:
            sums = dict(
                db.session.query(PointsHistory.user_id, func.sum(PointsHistory.points))
                .group_by(PointsHistory.user_id)
                .all()
            )
            members = Member.query.order_by(Member.id).all()
        except SQLAlchemyError as e:
            logger.error(f'Balance audit failed: {e}')
            raise DataUnavailableError('Could not audit balances', e) from e

        mismatches = []
        for member in members:
            check = BalanceCheck(member.user_id, member.total_points, int(sums.get(member.user_id) or 0))
            if not check.consistent:
                self._report_inconsistency(check)
                mismatches.append(check)
        logger.info(f'Balance audit: {len(mismatches)} of {len(members)} members inconsistent')
        return mismatches

    def _report_inconsistency(self, check: BalanceCheck) -> None:
        message = (
            f'Member {check.user_id} stored balance {check.stored_balance} '
            f'does not match history total {check.history_balance}'
        )
        logger.warning(message)
        warnings.warn(message, InconsistentStateWarning, stacklevel=3)

    # ==================== Point rules ====================

    def list_rules(self, active_only: bool = False) -> List[PointRule]:
        rules = PointRule.query.order_by(PointRule.id).all()
        if active_only:
            rules = [rule for rule in rules if rule.is_active]
        return rules

    def create_rule(self, data: dict) -> PointRule:
        values = {key: data[key] for key in self.RULE_FIELDS if key in data}
        rule = PointRule(**values)
        db.session.add(rule)
        commit_or_raise('create point rule')
        logger.info(f'Created point rule {rule.id} ({rule.rule_type})')
        return rule

    def update_rule(self, rule_id: int, data: dict) -> PointRule:
        rule = db.session.get(PointRule, rule_id)
        if not rule:
            raise NotFoundError('Point rule', rule_id)
        try:
            for key in self.RULE_FIELDS:
                if key in data:
                    setattr(rule, key, data[key])
            rule.validate_scope()
        except ValidationError:
            db.session.rollback()
            raise
        commit_or_raise(f'update point rule {rule_id}')
        logger.info(f'Updated point rule {rule_id}')
        return rule

    def delete_rule(self, rule_id: int) -> None:
        rule = db.session.get(PointRule, rule_id)
        if not rule:
            raise NotFoundError('Point rule', rule_id)
        db.session.delete(rule)
        commit_or_raise(f'delete point rule {rule_id}')
        logger.info(f'Deleted point rule {rule_id}')

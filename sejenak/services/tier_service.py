"""
Tier classification and recalculation.

classify_tier() is pure: given a spend figure and the tier ladder it
returns the matching tier. TierService loads spend and tiers from the
database and persists changes on members.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Booking, BookingStatus, Member, MemberTier
from ..utils.exceptions import DataUnavailableError, MemberNotFoundError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class TierProgress:
    current_tier: str
    next_tier: Optional[str]
    spend: Decimal
    remaining: Decimal

    def to_dict(self):
        return {
            'current_tier': self.current_tier,
            'next_tier': self.next_tier,
            'spend': float(self.spend),
            'remaining': float(self.remaining),
        }


def tier_threshold(tier: MemberTier, is_top: bool) -> Optional[Decimal]:
    """Spend needed to hold this tier. The top tier uses its maintain figure."""
    if is_top and tier.maintain_requirement is not None:
        return Decimal(tier.maintain_requirement)
    if tier.upgrade_requirement is not None:
        return Decimal(tier.upgrade_requirement)
    return None


def _check_ladder(tiers: Sequence[MemberTier]) -> None:
    if not tiers:
        raise ValidationError('At least one tier is required', 'tiers')
    previous = None
    for index, tier in enumerate(tiers):
        threshold = tier_threshold(tier, index == len(tiers) - 1)
        if threshold is None:
            continue
        if previous is not None and threshold <= previous:
            raise ValidationError(
                f'Tier {tier.name} threshold must be higher than the tier below it',
                'tiers'
            )
        previous = threshold


def classify_tier(spend, tiers: Sequence[MemberTier]) -> MemberTier:
    """
    Map a spend figure to a tier.

    Args:
        spend: member's spend (currency)
        tiers: tier definitions ordered lowest to highest

    Returns:
        The highest tier whose threshold the spend meets, or the lowest
        tier if none match. A tier with no threshold above the lowest
        is never reached by spend.
    """
    if spend is None:
        raise ValidationError('Spend figure is required', 'spend')
    spend = Decimal(str(spend))
    if spend < 0:
        raise ValidationError('Spend figure cannot be negative', 'spend')
    _check_ladder(tiers)

    top = len(tiers) - 1
    for index in range(top, 0, -1):
        threshold = tier_threshold(tiers[index], index == top)
        if threshold is not None and spend >= threshold:
            return tiers[index]
    return tiers[0]


def next_tier_progress(spend, tiers: Sequence[MemberTier]) -> TierProgress:
    """Current tier plus how much more spend the next one needs."""
    spend = Decimal(str(spend or 0))
    current = classify_tier(spend, tiers)
    index = list(tiers).index(current)
    top = len(tiers) - 1
    for position, candidate in enumerate(tiers[index + 1:], start=index + 1):
        threshold = tier_threshold(candidate, position == top)
        if threshold is None:
            continue
        return TierProgress(
            current_tier=current.name,
            next_tier=candidate.name,
            spend=spend,
            remaining=max(Decimal('0'), Decimal(threshold) - spend),
        )
    return TierProgress(current.name, None, spend, Decimal('0'))


class TierService:
    """Applies the tier classifier to stored members."""

    def get_tiers(self, active_only: bool = True) -> List[MemberTier]:
        """Tier ladder ordered lowest to highest."""
        try:
            query = MemberTier.query
            if active_only:
                query = query.filter(MemberTier.is_active.is_(True))
            return query.order_by(MemberTier.sort_order, MemberTier.id).all()
        except SQLAlchemyError as e:
            logger.error(f'Failed to load tiers: {e}')
            raise DataUnavailableError('Could not load tiers', e) from e

    def lowest_tier_name(self) -> str:
        tiers = self.get_tiers()
        if tiers:
            return tiers[0].name
        return current_app.config['TIER_ORDER'][0]

    def member_spend(self, user_id: str) -> Decimal:
        """Sum of the member's completed booking totals."""
        try:
            total = db.session.query(
                func.coalesce(func.sum(Booking.total_price), 0)
            ).filter(
                Booking.user_id == user_id,
                func.lower(Booking.status) == BookingStatus.COMPLETED.value
            ).scalar()
        except SQLAlchemyError as e:
            logger.error(f'Failed to load spend for {user_id}: {e}')
            raise DataUnavailableError('Could not load booking totals', e) from e
        return Decimal(str(total or 0))

    def apply_tier(self, member: Member, tiers: Sequence[MemberTier] = None) -> bool:
        """
        Reclassify a member in the current session without committing.

        Returns:
            True if the tier changed
        """
        tiers = tiers if tiers is not None else self.get_tiers()
        if not tiers:
            return False
        spend = self.member_spend(member.user_id)
        new_tier = classify_tier(spend, tiers).name
        if new_tier == member.tier:
            return False
        logger.info(f'Member {member.user_id} tier {member.tier} -> {new_tier} (spend {spend})')
        member.tier = new_tier
        return True

    def recalculate_member_tier(self, user_id: str) -> dict:
        member = Member.query.filter_by(user_id=user_id).first()
        if not member:
            raise MemberNotFoundError(user_id)
        previous = member.tier
        try:
            changed = self.apply_tier(member)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to recalculate tier for {user_id}: {e}')
            raise DataUnavailableError('Could not update member tier', e) from e
        return {'user_id': user_id, 'previous_tier': previous, 'tier': member.tier, 'changed': changed}

    def recalculate_all_tiers(self) -> dict:
        """Reclassify every member in one transaction."""
        tiers = self.get_tiers()
        stats = {'checked': 0, 'changed': 0}
        try:
            for member in Member.query.order_by(Member.id).all():
                stats['checked'] += 1
                if self.apply_tier(member, tiers):
                    stats['changed'] += 1
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Tier recalculation failed: {e}')
            raise DataUnavailableError('Could not recalculate tiers', e) from e
        logger.info(f"Tier recalculation: {stats['changed']} of {stats['checked']} members changed")
        return stats

    def update_tier(self, tier_id: int, data: dict) -> MemberTier:
        tier = db.session.get(MemberTier, tier_id)
        if not tier:
            raise NotFoundError('Tier', tier_id)

        editable = (
            'min_points', 'multiplier', 'expiry', 'upgrade_requirement', 'maintain_requirement',
            'auto_reward', 'cashback', 'stamp_program', 'double_stamp_weekday',
            'double_stamp_event', 'priority_booking', 'free_rewards', 'description',
            'customer_profile', 'color', 'is_active', 'sort_order',
        )
        for key in editable:
            if key in data:
                setattr(tier, key, data[key])

        tiers = self.get_tiers(active_only=False)
        try:
            _check_ladder(sorted(tiers, key=lambda t: (t.sort_order, t.id)))
        except ValidationError:
            db.session.rollback()
            raise
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DataUnavailableError('Could not update tier', e) from e
        logger.info(f'Tier {tier.name} updated')
        return tier

"""
Reward redemption.

validate_redemption() is the pure gate. RedemptionService.redeem() runs
it and then applies the claim as one transaction, using conditional
UPDATEs on the reward usage count and the member balance so two
concurrent claims cannot overrun a quota or a balance.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import HistoryType, Member, PointsHistory, Reward, RewardMethod, RewardRedemption
from ..utils.exceptions import (
    DataUnavailableError,
    MemberNotFoundError,
    RedemptionRejection,
    RewardNotFoundError,
    ValidationError,
)
from .storage import commit_or_raise

logger = logging.getLogger(__name__)


@dataclass
class RedemptionDecision:
    accepted: bool
    rejection: Optional[RedemptionRejection] = None
    balance_after: Optional[int] = None
    usage_count_after: Optional[int] = None


@dataclass
class RedemptionResult:
    user_id: str
    reward_id: int
    accepted: bool
    rejection: Optional[RedemptionRejection] = None
    method: str = RewardMethod.POINT.value
    cost: int = 0
    balance: Optional[int] = None
    usage_count: Optional[int] = None
    redemption_id: Optional[int] = None

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'reward_id': self.reward_id,
            'accepted': self.accepted,
            'rejection': self.rejection.value if self.rejection else None,
            'message': self.rejection.message if self.rejection else None,
            'method': self.method,
            'cost': self.cost,
            'balance': self.balance,
            'usage_count': self.usage_count,
            'redemption_id': self.redemption_id,
        }


def validate_redemption(
    balance: int,
    cost: int,
    status: str,
    quota: Optional[int] = None,
    usage_count: int = 0,
    min_point: Optional[int] = None,
    points_balance: Optional[int] = None,
) -> RedemptionDecision:
    """
    Decide whether a claim may proceed.

    Checks run in a fixed order and the first failure wins: status,
    quota, minimum-point gate, balance.

    Args:
        balance: balance in the reward's currency (points or stamps)
        cost: reward cost in that currency
        status: reward status; anything but "active" is expired
        quota: maximum total redemptions, None for unlimited
        usage_count: redemptions so far
        min_point: minimum points balance the member must hold
        points_balance: member's points, when the reward is paid in stamps
    """
    if balance is None or cost is None:
        raise ValidationError('balance and cost are required')
    if cost < 0:
        raise ValidationError('cost cannot be negative', 'cost')
    usage_count = usage_count or 0
    gate_balance = balance if points_balance is None else points_balance

    if (status or '').strip().lower() != 'active':
        return RedemptionDecision(False, RedemptionRejection.REWARD_EXPIRED)
    if quota is not None and usage_count >= quota:
        return RedemptionDecision(False, RedemptionRejection.QUOTA_EXHAUSTED)
    if min_point is not None and gate_balance < min_point:
        return RedemptionDecision(False, RedemptionRejection.BELOW_MINIMUM_POINT)
    if balance < cost:
        return RedemptionDecision(False, RedemptionRejection.INSUFFICIENT_BALANCE)
    return RedemptionDecision(True, None, balance - cost, usage_count + 1)


class RedemptionService:
    """Service for the rewards catalogue and member claims."""

    REWARD_FIELDS = (
        'name', 'method', 'required', 'claim_type', 'auto_reward', 'min_point', 'expiry',
        'category', 'image_url', 'quota', 'status',
    )

    def redeem(self, user_id: str, reward_id: int) -> RedemptionResult:
        """
        Claim a reward for a member.

        Business refusals come back in the result. Storage failures roll
        back the whole claim and raise DataUnavailableError.

        Raises:
            ValidationError: missing user_id or reward_id
            MemberNotFoundError / RewardNotFoundError: unknown ids
        """
        if not user_id:
            raise ValidationError('user_id is required', 'user_id')
        if reward_id is None:
            raise ValidationError('reward_id is required', 'reward_id')

        try:
            reward = db.session.get(Reward, reward_id)
            member = Member.query.filter_by(user_id=user_id).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DataUnavailableError('Could not load redemption data', e) from e
        if not reward:
            raise RewardNotFoundError(reward_id)
        if not member:
            raise MemberNotFoundError(user_id)

        stamp_reward = reward.method == RewardMethod.STAMP.value
        balance = member.stamps if stamp_reward else member.total_points
        result = RedemptionResult(
            user_id=user_id,
            reward_id=reward.id,
            accepted=False,
            method=reward.method,
            cost=reward.required,
            balance=balance,
            usage_count=reward.usage_count,
        )

        decision = validate_redemption(
            balance=balance,
            cost=reward.required,
            status=reward.status,
            quota=reward.quota,
            usage_count=reward.usage_count,
            min_point=reward.min_point,
            points_balance=member.total_points,
        )
        if not decision.accepted:
            result.rejection = decision.rejection
            logger.info(f'Redemption of reward {reward.id} by {user_id} rejected: {decision.rejection.value}')
            return result

        rejection, redemption_id = self._apply(member, reward, stamp_reward)
        if rejection is not None:
            result.rejection = rejection
            logger.info(f'Redemption of reward {reward_id} by {user_id} lost a race: {rejection.value}')
            return result

        result.accepted = True
        result.balance = member.stamps if stamp_reward else member.total_points
        result.usage_count = reward.usage_count
        result.redemption_id = redemption_id
        logger.info(
            f'Reward {reward.id} redeemed by {user_id} for {reward.required} '
            f'{"stamps" if stamp_reward else "points"} (balance {result.balance})'
        )
        return result

    def _apply(self, member: Member, reward: Reward, stamp_reward: bool) -> Tuple[Optional[RedemptionRejection], Optional[int]]:
        """Write the claim atomically. Returns (rejection, redemption id)."""
        cost = reward.required
        try:
            usage = update(Reward).where(Reward.id == reward.id)
            if reward.quota is not None:
                usage = usage.where(Reward.usage_count < Reward.quota)
            usage = usage.values(usage_count=Reward.usage_count + 1)
            if db.session.execute(usage, execution_options={'synchronize_session': False}).rowcount != 1:
                db.session.rollback()
                return RedemptionRejection.QUOTA_EXHAUSTED, None

            balance_column = Member.stamps if stamp_reward else Member.total_points
            debit = (
                update(Member)
                .where(Member.id == member.id, balance_column >= cost)
                .values({balance_column: balance_column - cost})
            )
            if db.session.execute(debit, execution_options={'synchronize_session': False}).rowcount != 1:
                db.session.rollback()
                return RedemptionRejection.INSUFFICIENT_BALANCE, None

            redemption = RewardRedemption(
                user_id=member.user_id,
                reward_id=reward.id,
                points_spent=cost,
                method=reward.method,
                status='completed',
                redeemed_at=datetime.utcnow(),
            )
            db.session.add(redemption)
            if not stamp_reward and cost > 0:
                db.session.add(PointsHistory(
                    user_id=member.user_id,
                    points=-cost,
                    type=HistoryType.REDEEMED.value,
                    description=f'Redeemed {reward.name}',
                    reference_id=f'reward:{reward.id}',
                ))
            db.session.flush()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Redemption of reward {reward.id} by {member.user_id} failed: {e}')
            raise DataUnavailableError('Could not complete redemption', e) from e

        redemption_id = redemption.id
        commit_or_raise(f"redeem reward {reward.id}")
        return None, redemption_id

    # ==================== Catalogue ====================

    def list_rewards(self, status: str = None) -> List[Reward]:
        rewards = Reward.query.order_by(Reward.id).all()
        if status:
            rewards = [r for r in rewards if (r.status or '').lower() == status.lower()]
        return rewards

    def create_reward(self, data: dict) -> Reward:
        values = {key: data[key] for key in self.REWARD_FIELDS if key in data}
        values['expiry'] = self._parse_expiry(values.get('expiry'))
        reward = Reward(**values)
        db.session.add(reward)
        commit_or_raise('create reward')
        logger.info(f'Created reward {reward.id} ({reward.name})')
        return reward

    def update_reward(self, reward_id: int, data: dict) -> Reward:
        reward = db.session.get(Reward, reward_id)
        if not reward:
            raise RewardNotFoundError(reward_id)
        try:
            for key in self.REWARD_FIELDS:
                if key not in data:
                    continue
                value = self._parse_expiry(data[key]) if key == 'expiry' else data[key]
                setattr(reward, key, value)
            if reward.quota is not None and reward.usage_count > reward.quota:
                raise ValidationError('quota cannot be lower than redemptions so far', 'quota')
        except ValidationError:
            db.session.rollback()
            raise
        commit_or_raise(f'update reward {reward_id}')
        logger.info(f'Updated reward {reward_id}')
        return reward

    def delete_reward(self, reward_id: int) -> None:
        reward = db.session.get(Reward, reward_id)
        if not reward:
            raise RewardNotFoundError(reward_id)
        if RewardRedemption.query.filter_by(reward_id=reward_id).first():
            raise ValidationError('Reward has redemptions; mark it Expired instead', 'reward_id')
        db.session.delete(reward)
        commit_or_raise(f'delete reward {reward_id}')
        logger.info(f'Deleted reward {reward_id}')

    @staticmethod
    def _parse_expiry(value):
        if value in (None, ''):
            return None
        if isinstance(value, str):
            try:
                return datetime.strptime(value[:10], '%Y-%m-%d').date()
            except ValueError:
                raise ValidationError(f'Invalid expiry date: {value}', 'expiry')
        return value

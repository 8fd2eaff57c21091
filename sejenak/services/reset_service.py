"""
Full loyalty program reset.

Zeroes every member's balances and tier, and deletes the points
history (with its record of credited bookings), redemption log and
point rules. All four changes commit together or not at all. There is no undo.
"""
import logging

from flask import current_app
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Member, PointRule, PointsHistory, RecordedBooking, RewardRedemption
from ..utils.exceptions import DataUnavailableError, ValidationError
from .tier_service import TierService

logger = logging.getLogger(__name__)


class LoyaltyResetService:

    def __init__(self, tier_service: TierService = None):
        self.tier_service = tier_service or TierService()

    def reset_program(self, confirmation: str) -> dict:
        """
        Wipe the program's dynamic state.

        Args:
            confirmation: must be the configured phrase (default "RESET")

        Returns:
            Number of rows touched per collection
        """
        expected = current_app.config.get('RESET_CONFIRMATION', 'RESET')
        if confirmation != expected:
            raise ValidationError(f'Type {expected} to confirm the reset', 'confirmation')

        lowest_tier = self.tier_service.lowest_tier_name()
        try:
            members = db.session.execute(
                update(Member).values(
                    total_points=0,
                    lifetime_points=0,
                    stamps=0,
                    tier=lowest_tier,
                ),
                execution_options={'synchronize_session': False},
            ).rowcount
            history = db.session.execute(delete(PointsHistory)).rowcount
            db.session.execute(delete(RecordedBooking))
            redemptions = db.session.execute(delete(RewardRedemption)).rowcount
            rules = db.session.execute(delete(PointRule)).rowcount
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Loyalty reset failed, nothing was changed: {e}')
            raise DataUnavailableError('Could not reset the loyalty program', e) from e

        counts = {
            'members_reset': members,
            'history_deleted': history,
            'redemptions_deleted': redemptions,
            'rules_deleted': rules,
        }
        logger.warning(
            f"Loyalty program reset: {members} members zeroed to {lowest_tier}, "
            f"{history} history entries, {redemptions} redemptions and {rules} rules deleted"
        )
        return counts

"""
Tests for tier classification and TierService.
"""
import pytest
from datetime import datetime
from decimal import Decimal

from sejenak.extensions import db
from sejenak.models import Booking, Member, MemberTier
from sejenak.services.tier_service import (
    TierService,
    classify_tier,
    next_tier_progress,
)
from sejenak.utils.exceptions import MemberNotFoundError, NotFoundError, ValidationError


def ladder():
    return [
        MemberTier(name='Grace', sort_order=0, upgrade_requirement=0),
        MemberTier(name='Signature', sort_order=1, upgrade_requirement=5000000),
        MemberTier(name='Elite', sort_order=2, upgrade_requirement=15000000, maintain_requirement=12000000),
    ]


class TestClassifyTier:
    """Test the pure spend-to-tier mapping."""

    def test_thresholds(self):
        tiers = ladder()
        assert classify_tier(0, tiers).name == 'Grace'
        assert classify_tier(4999999, tiers).name == 'Grace'
        assert classify_tier(5000000, tiers).name == 'Signature'
        assert classify_tier(11999999, tiers).name == 'Signature'

    def test_top_tier_uses_maintain_figure(self):
        """Test Elite is held from the 12M maintain figure, not 15M."""
        tiers = ladder()
        assert classify_tier(12000000, tiers).name == 'Elite'
        assert classify_tier(Decimal('20000000.50'), tiers).name == 'Elite'

    def test_monotonic_in_spend(self):
        """Test a higher spend never lands in a lower tier."""
        tiers = ladder()
        rank = {tier.name: index for index, tier in enumerate(tiers)}
        spends = [0, 1, 4999999, 5000000, 7500000, 11999999, 12000000, 15000000, 99000000]
        assigned = [rank[classify_tier(s, tiers).name] for s in spends]
        assert assigned == sorted(assigned)

    def test_negative_spend_rejected(self):
        with pytest.raises(ValidationError):
            classify_tier(-1, ladder())

    def test_missing_spend_rejected(self):
        with pytest.raises(ValidationError):
            classify_tier(None, ladder())

    def test_empty_ladder_rejected(self):
        with pytest.raises(ValidationError):
            classify_tier(100, [])

    def test_non_increasing_ladder_rejected(self):
        tiers = [
            MemberTier(name='Grace', upgrade_requirement=0),
            MemberTier(name='Signature', upgrade_requirement=5000000),
            MemberTier(name='Elite', upgrade_requirement=4000000),
        ]
        with pytest.raises(ValidationError):
            classify_tier(100, tiers)

    def test_tier_without_threshold_is_skipped(self):
        tiers = [
            MemberTier(name='Grace', upgrade_requirement=0),
            MemberTier(name='Signature'),
            MemberTier(name='Elite', upgrade_requirement=10000000),
        ]
        assert classify_tier(6000000, tiers).name == 'Grace'
        assert classify_tier(10000000, tiers).name == 'Elite'


class TestNextTierProgress:

    def test_progress_towards_next_tier(self):
        progress = next_tier_progress(3000000, ladder())
        assert progress.current_tier == 'Grace'
        assert progress.next_tier == 'Signature'
        assert progress.remaining == Decimal('2000000')

    def test_progress_to_top_tier_uses_maintain_figure(self):
        progress = next_tier_progress(10000000, ladder())
        assert progress.next_tier == 'Elite'
        assert progress.remaining == Decimal('2000000')

    def test_top_tier_has_no_next(self):
        progress = next_tier_progress(13000000, ladder())
        assert progress.current_tier == 'Elite'
        assert progress.next_tier is None
        assert progress.to_dict()['remaining'] == 0.0


class TestTierService:
    """Test tier recalculation against stored bookings."""

    def _completed_booking(self, user_id, amount, status='completed'):
        booking = Booking(
            user_id=user_id,
            booking_date=datetime(2026, 2, 1, 10, 0),
            total_price=Decimal(amount),
            status=status,
        )
        db.session.add(booking)
        db.session.commit()
        return booking

    def test_get_tiers_ordered(self, app, sample_tiers):
        names = [t.name for t in TierService().get_tiers()]
        assert names == ['Grace', 'Signature', 'Elite']

    def test_member_spend_counts_completed_only(self, app, sample_member):
        self._completed_booking(sample_member.user_id, '3000000')
        self._completed_booking(sample_member.user_id, '2500000', status='Completed')
        self._completed_booking(sample_member.user_id, '9000000', status='cancelled')

        assert TierService().member_spend(sample_member.user_id) == Decimal('5500000')

    def test_recalculate_member_tier(self, app, sample_member):
        self._completed_booking(sample_member.user_id, '6000000')

        result = TierService().recalculate_member_tier(sample_member.user_id)

        assert result == {
            'user_id': sample_member.user_id,
            'previous_tier': 'Grace',
            'tier': 'Signature',
            'changed': True,
        }
        assert Member.query.filter_by(user_id=sample_member.user_id).one().tier == 'Signature'

    def test_recalculate_unknown_member(self, app, sample_tiers):
        with pytest.raises(MemberNotFoundError):
            TierService().recalculate_member_tier('nobody')

    def test_recalculate_all_tiers(self, app, sample_member):
        self._completed_booking(sample_member.user_id, '13000000')

        stats = TierService().recalculate_all_tiers()

        assert stats == {'checked': 1, 'changed': 1}
        assert db.session.get(Member, sample_member.id).tier == 'Elite'

    def test_recalculate_all_is_idempotent(self, app, sample_member):
        TierService().recalculate_all_tiers()
        assert TierService().recalculate_all_tiers() == {'checked': 1, 'changed': 0}

    def test_lowest_tier_falls_back_to_config(self, app):
        assert TierService().lowest_tier_name() == 'Grace'

    def test_update_tier(self, app, sample_tiers):
        signature = sample_tiers[1]
        tier = TierService().update_tier(signature.id, {'upgrade_requirement': 6000000, 'color': '#000000'})
        assert tier.upgrade_requirement == Decimal('6000000')
        assert tier.color == '#000000'

    def test_update_tier_rejects_broken_ladder(self, app, sample_tiers):
        signature = sample_tiers[1]
        with pytest.raises(ValidationError):
            TierService().update_tier(signature.id, {'upgrade_requirement': 20000000})
        assert db.session.get(MemberTier, signature.id).upgrade_requirement == Decimal('5000000')

    def test_update_unknown_tier(self, app, sample_tiers):
        with pytest.raises(NotFoundError):
            TierService().update_tier(999, {'color': '#FFFFFF'})

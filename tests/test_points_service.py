"""
Tests for PointsService: earning on completed bookings, adjustments,
balance audits and point rule management.
"""
import pytest
from unittest.mock import patch
from datetime import datetime
from decimal import Decimal

from sejenak.extensions import db
from sejenak.models import Booking, Member, PointRule, PointsHistory, RecordedBooking
from sejenak.services.points_service import PointsService, booking_reference
from sejenak.utils.exceptions import (
    InconsistentStateWarning,
    MemberNotFoundError,
    NotFoundError,
    ValidationError,
)


NOW = datetime(2026, 3, 4, 15, 0)


@pytest.fixture
def make_booking(app):
    def _make(user_id, amount, status='completed', treatment_id=None):
        booking = Booking(
            user_id=user_id,
            treatment_id=treatment_id,
            booking_date=datetime(2026, 3, 4, 10, 0),
            total_price=Decimal(amount),
            status=status,
        )
        db.session.add(booking)
        db.session.commit()
        return booking
    return _make


class TestRecordCompletedBooking:
    """Test awarding points for a completed booking."""

    def test_new_member_is_enrolled(self, app, sample_customer, sample_tiers, sample_rule, make_booking):
        """Test the first qualifying booking creates the member row."""
        booking = make_booking(sample_customer.id, '350000')

        result = PointsService().record_completed_booking(booking.id, now=NOW)

        assert result.first_transaction is True
        assert result.points_awarded == 30
        assert result.balance == 30
        assert result.tier == 'Grace'
        member = Member.query.filter_by(user_id=sample_customer.id).one()
        assert member.total_points == 30
        assert member.lifetime_points == 30

    def test_history_line_per_rule_with_expiry(self, app, sample_customer, sample_tiers, make_booking):
        db.session.add_all([
            PointRule(name='Base', spend_amount=100000, point_earned=10, expiry=12),
            PointRule(name='Short', spend_amount=100000, point_earned=1, expiry=3),
        ])
        db.session.commit()
        booking = make_booking(sample_customer.id, '200000')

        PointsService().record_completed_booking(booking.id, now=NOW)

        entries = PointsHistory.query.order_by(PointsHistory.id).all()
        assert [e.points for e in entries] == [20, 2]
        assert entries[0].expires_at == datetime(2027, 3, 4, 15, 0)
        assert entries[1].expires_at == datetime(2026, 6, 4, 15, 0)
        assert all(e.reference_id == booking_reference(booking.id) for e in entries)

    def test_welcome_bonus_for_first_time_member(self, app, sample_customer, sample_tiers, make_booking):
        db.session.add(PointRule(spend_amount=50000, point_earned=5, welcome_point=20))
        db.session.commit()
        booking = make_booking(sample_customer.id, '120000')

        result = PointsService().record_completed_booking(booking.id, now=NOW)

        assert result.points_awarded == 30
        assert result.welcome_bonus == 20
        assert PointsHistory.query.filter_by(description='Welcome bonus').count() == 1

    def test_existing_member_with_history_gets_no_welcome_bonus(self, app, sample_member, make_booking):
        db.session.add(PointRule(spend_amount=50000, point_earned=5, welcome_point=20))
        db.session.commit()
        booking = make_booking(sample_member.user_id, '120000')

        result = PointsService().record_completed_booking(booking.id, now=NOW)

        assert result.first_transaction is False
        assert result.welcome_bonus == 0
        assert result.balance == 510

    def test_tier_multiplier_applies_to_rule_points(self, app, sample_member, sample_rule, make_booking):
        member = db.session.get(Member, sample_member.id)
        member.tier = 'Signature'
        db.session.commit()
        booking = make_booking(member.user_id, '6000000')

        result = PointsService().record_completed_booking(booking.id, now=NOW)

        # 600 points at 1.25x
        assert result.points_awarded == 750
        assert result.tier == 'Signature'
        assert result.tier_changed is False

    def test_tier_upgrade_is_committed_with_points(self, app, sample_member, sample_rule, make_booking):
        booking = make_booking(sample_member.user_id, '5000000')

        result = PointsService().record_completed_booking(booking.id, now=NOW)

        assert result.tier_changed is True
        assert result.tier == 'Signature'
        assert Member.query.filter_by(user_id=sample_member.user_id).one().tier == 'Signature'

    def test_same_booking_is_not_credited_twice(self, app, sample_member, sample_rule, make_booking):
        booking = make_booking(sample_member.user_id, '300000')
        service = PointsService()

        first = service.record_completed_booking(booking.id, now=NOW)
        second = service.record_completed_booking(booking.id, now=NOW)

        assert first.points_awarded == 30
        assert second.already_recorded is True
        assert second.points_awarded == 0
        assert second.balance == 530
        assert PointsHistory.query.filter_by(reference_id=booking_reference(booking.id)).count() == 1

    def test_concurrent_credit_of_same_booking_is_refused(self, app, sample_member, sample_rule, make_booking):
        booking = make_booking(sample_member.user_id, '300000')
        # Another worker credits the booking after this one passed its check
        other = RecordedBooking(booking_id=booking.id, user_id=sample_member.user_id, points=30)
        db.session.add(other)
        db.session.commit()

        with patch.object(PointsService, '_find_recorded', side_effect=[None, other]):
            result = PointsService().record_completed_booking(booking.id, now=NOW)

        assert result.already_recorded is True
        assert result.points_awarded == 0
        assert result.balance == 500
        assert PointsHistory.query.filter_by(reference_id=booking_reference(booking.id)).count() == 0
        assert RecordedBooking.query.filter_by(booking_id=booking.id).count() == 1

    def test_zero_award_writes_nothing(self, app, sample_customer, sample_tiers, sample_rule, make_booking):
        booking = make_booking(sample_customer.id, '50000')

        result = PointsService().record_completed_booking(booking.id, now=NOW)

        assert result.points_awarded == 0
        assert result.balance == 0
        assert Member.query.count() == 0
        assert PointsHistory.query.count() == 0

    def test_booking_not_completed(self, app, sample_customer, sample_rule, make_booking):
        booking = make_booking(sample_customer.id, '300000', status='confirmed')
        with pytest.raises(ValidationError):
            PointsService().record_completed_booking(booking.id)

    def test_unknown_booking(self, app):
        with pytest.raises(NotFoundError):
            PointsService().record_completed_booking(404)

    def test_missing_booking_id(self, app):
        with pytest.raises(ValidationError):
            PointsService().record_completed_booking(None)


class TestAdjustPoints:
    """Test manual point adjustments."""

    def test_credit(self, app, sample_member):
        member = PointsService().adjust_points(sample_member.user_id, 150, 'Complaint goodwill')

        assert member.total_points == 650
        assert member.lifetime_points == 650
        entry = PointsHistory.query.filter_by(type='adjustment').one()
        assert entry.points == 150
        assert entry.description == 'Complaint goodwill'

    def test_debit_leaves_lifetime_alone(self, app, sample_member):
        member = PointsService().adjust_points(sample_member.user_id, -200, 'Correction')

        assert member.total_points == 300
        assert member.lifetime_points == 500

    def test_debit_below_zero_rejected(self, app, sample_member):
        with pytest.raises(ValidationError):
            PointsService().adjust_points(sample_member.user_id, -501, 'Too much')
        assert db.session.get(Member, sample_member.id).total_points == 500

    def test_zero_rejected(self, app, sample_member):
        with pytest.raises(ValidationError):
            PointsService().adjust_points(sample_member.user_id, 0, 'Nothing')

    def test_reason_required(self, app, sample_member):
        with pytest.raises(ValidationError) as exc_info:
            PointsService().adjust_points(sample_member.user_id, 10, '  ')
        assert exc_info.value.field == 'reason'

    def test_unknown_member(self, app, sample_tiers):
        with pytest.raises(MemberNotFoundError):
            PointsService().adjust_points('nobody', 10, 'Gift')


class TestBalanceAudit:
    """Test stored balances against the points history."""

    def test_consistent_balance(self, app, sample_member):
        check = PointsService().verify_balance(sample_member.user_id)
        assert check.consistent
        assert check.history_balance == 500

    def test_mismatch_warns(self, app, sample_member):
        member = db.session.get(Member, sample_member.id)
        member.total_points = 700
        db.session.commit()

        with pytest.warns(InconsistentStateWarning):
            check = PointsService().verify_balance(sample_member.user_id)

        assert not check.consistent
        assert check.to_dict() == {
            'user_id': sample_member.user_id,
            'stored_balance': 700,
            'history_balance': 500,
            'consistent': False,
        }

    def test_verify_all_returns_mismatches_only(self, app, sample_member, other_customer):
        db.session.add(Member(user_id=other_customer.id, total_points=40))
        db.session.commit()

        with pytest.warns(InconsistentStateWarning):
            mismatches = PointsService().verify_all_balances()

        assert [m.user_id for m in mismatches] == [other_customer.id]

    def test_verify_unknown_member(self, app):
        with pytest.raises(MemberNotFoundError):
            PointsService().verify_balance('nobody')


class TestPointRules:
    """Test point rule management."""

    def test_create_rule(self, app):
        rule = PointsService().create_rule({
            'name': 'Massage Monday',
            'spend_amount': 100000,
            'point_earned': 15,
            'rule_type': 'day',
            'days': ['Monday'],
            'ignored': 'field',
        })
        assert rule.id is not None
        assert rule.days == ['monday']

    def test_create_rule_missing_amount(self, app):
        with pytest.raises(ValidationError):
            PointsService().create_rule({'point_earned': 10})

    def test_update_rule_rejects_missing_scope(self, app, sample_rule):
        with pytest.raises(ValidationError):
            PointsService().update_rule(sample_rule.id, {'rule_type': 'category'})
        assert db.session.get(PointRule, sample_rule.id).rule_type == 'general'

    def test_update_rule(self, app, sample_rule):
        rule = PointsService().update_rule(sample_rule.id, {'status': 'Inactive'})
        assert rule.is_active is False
        assert PointsService().list_rules(active_only=True) == []

    def test_delete_rule(self, app, sample_rule):
        PointsService().delete_rule(sample_rule.id)
        assert PointRule.query.count() == 0

    def test_delete_unknown_rule(self, app):
        with pytest.raises(NotFoundError):
            PointsService().delete_rule(99)

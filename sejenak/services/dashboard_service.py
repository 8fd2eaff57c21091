"""
Dashboard analytics for Sejenak.

Loads bookings (and, for the loyalty overview, members, points history
and redemptions) through PagedQuery and hands them to the pure reducers
in trend_aggregator.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Booking, Member, PointsHistory, Profile, Reward, RewardRedemption, Therapist, Treatment
from ..utils.exceptions import DataUnavailableError, ValidationError
from . import trend_aggregator as trends
from .storage import PagedQuery, fetch_optional

logger = logging.getLogger(__name__)


def _booking_date(booking):
    return booking.booking_date


def parse_range(start=None, end=None, default_days: int = 30):
    """
    Turn optional ISO date strings into a (start, end) date pair.

    Defaults to the last default_days days ending today.
    """
    end_date = trends.to_date(end) if end else date.today()
    start_date = trends.to_date(start) if start else end_date - timedelta(days=default_days)
    if end_date < start_date:
        raise ValidationError('end date must not be before start date', 'end')
    return start_date, end_date


class DashboardService:
    """Analytics scoped to an optional branch and treatment category."""

    def __init__(self, branch_id: Optional[int] = None, category: Optional[str] = None):
        self.branch_id = branch_id
        self.category = category

    # ==================== Storage ====================

    def booking_query(self, start: date, end: date):
        """
        Bookings in [start, end], filtered by branch and category.

        Legacy rows with no branch are included in every branch view.
        """
        query = Booking.query.options(joinedload(Booking.treatment)).filter(
            Booking.booking_date >= datetime.combine(start, time.min),
            Booking.booking_date <= datetime.combine(end, time.max),
        )
        if self.branch_id is not None:
            query = query.filter(or_(Booking.branch_id == self.branch_id, Booking.branch_id.is_(None)))
        if self.category:
            query = query.join(Treatment, Booking.treatment_id == Treatment.id).filter(
                func.lower(Treatment.category) == self.category.lower()
            )
        return query

    def load_bookings(self, start: date, end: date) -> List[Booking]:
        return PagedQuery(self.booking_query(start, end), Booking.id, source='bookings').all()

    def _therapist_count(self) -> int:
        query = Therapist.query
        if self.branch_id is not None:
            query = query.filter(Therapist.branch_id == self.branch_id)
        try:
            return query.count()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to count therapists: {e}')
            raise DataUnavailableError('Could not read therapists', e) from e

    def _profile_names(self, user_ids) -> Dict[str, str]:
        user_ids = sorted({uid for uid in user_ids if uid})
        if not user_ids:
            return {}
        query = Profile.query.filter(Profile.id.in_(user_ids))
        return {p.id: p.full_name for p in PagedQuery(query, Profile.id, source='profiles') if p.full_name}

    def _therapist_names(self, therapist_ids) -> Dict[Any, str]:
        therapist_ids = sorted({tid for tid in therapist_ids if tid})
        if not therapist_ids:
            return {}
        query = Therapist.query.options(joinedload(Therapist.profile)).filter(Therapist.id.in_(therapist_ids))
        return {t.id: t.name for t in PagedQuery(query, Therapist.id, source='therapists')}

    # ==================== Surfaces ====================

    def summary(self, start, end) -> Dict[str, Any]:
        """Headline stats, four trends sharing one bucket set, monthly series and top 3 lists."""
        start, end = parse_range(start, end)
        bookings = self.load_bookings(start, end)

        buckets = trends.BucketSet(
            start, end,
            current_app.config.get('TREND_MIN_BUCKETS', trends.MIN_BUCKETS),
            current_app.config.get('TREND_MAX_BUCKETS', trends.MAX_BUCKETS),
        )
        appointment_trend = buckets.trend(bookings, _booking_date, lambda b: b.total_price)

        stats = {
            'therapist_count': self._therapist_count(),
            'customer_count': len({b.user_id for b in bookings if b.user_id}),
            'appointment_count': len(bookings),
            'revenue': float(sum(trends.to_amount(b.total_price) for b in bookings)),
            'completed_count': sum(1 for b in bookings if b.normalized_status == 'completed'),
            'cancelled_count': sum(1 for b in bookings if b.normalized_status == 'cancelled'),
        }

        therapist_names = self._therapist_names(b.performed_by for b in bookings)
        return {
            'range': {'start': start.isoformat(), 'end': end.isoformat(), 'granularity': buckets.granularity},
            'stats': stats,
            'trends': {
                'labels': [b.label for b in appointment_trend],
                'appointments': [b.count for b in appointment_trend],
                'revenue': [float(b.total) for b in appointment_trend],
                'customers': [b.count for b in buckets.distinct_trend(bookings, _booking_date, lambda b: b.user_id)],
                'therapists': [b.count for b in buckets.distinct_trend(bookings, _booking_date, lambda b: b.performed_by)],
            },
            'appointment_stats': trends.monthly_status_series(bookings, start, end),
            'revenue_by_month': trends.monthly_revenue_series(bookings, start, end),
            'top_categories': [i.to_dict() for i in trends.top_categories(bookings)],
            'top_treatments': [i.to_dict() for i in trends.top_treatments(bookings)],
            'top_therapists': [i.to_dict() for i in trends.top_therapists(bookings, therapist_names)],
        }

    def top_customers(self, start, end, limit: int = 5) -> List[Dict[str, Any]]:
        start, end = parse_range(start, end)
        bookings = self.load_bookings(start, end)
        names = self._profile_names(b.user_id for b in bookings)
        return [c.to_dict() for c in trends.top_customers(bookings, names, limit)]

    def retention(self, start, end) -> Dict[str, int]:
        start, end = parse_range(start, end)
        return trends.retention_split(self.load_bookings(start, end)).to_dict()

    def alerts(self, start, end, limit: int = None) -> List[Dict[str, Any]]:
        start, end = parse_range(start, end)
        if limit is None:
            limit = current_app.config.get('ALERT_LIMIT', 5)
        bookings = self.load_bookings(start, end)
        names = self._profile_names(b.user_id for b in bookings)
        return [a.to_dict() for a in trends.customer_alerts(bookings, names, limit)]


class LoyaltyOverviewService:
    """Program-wide loyalty figures. History and redemptions are optional sources."""

    def overview(self, start, end) -> Dict[str, Any]:
        start, end = parse_range(start, end, default_days=365)
        members = PagedQuery(Member.query, Member.id, source='members').all()
        history = fetch_optional(PagedQuery(PointsHistory.query, PointsHistory.id, source='points history'))
        redemptions = fetch_optional(
            PagedQuery(RewardRedemption.query, RewardRedemption.id, source='reward redemptions')
        )
        reward_names = {}
        if redemptions:
            reward_names = {
                r.id: r.name
                for r in fetch_optional(PagedQuery(Reward.query, Reward.id, source='rewards'))
            }

        overview = trends.summarize_loyalty(
            members,
            history,
            redemptions,
            start,
            end,
            tier_order=current_app.config['TIER_ORDER'],
            aliases=current_app.config.get('LEGACY_TIER_ALIASES'),
            reward_names=reward_names,
        )
        data = overview.to_dict()
        data['range'] = {'start': start.isoformat(), 'end': end.isoformat()}
        return data

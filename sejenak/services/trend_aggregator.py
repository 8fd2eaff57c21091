"""
Trend and leaderboard reducers for the dashboards.

Everything here is pure: callers pass rows already loaded from storage
(bookings, points history, redemptions, members) and get chart-ready
series back. Empty input always produces a zero-filled result of the
same shape.

Bucketing:
- range <= 30 days: daily buckets
- range <= 90 days: weekly buckets, weeks start on Sunday
- otherwise: monthly buckets

Every period in range gets a bucket. Fewer than 6 buckets are padded
with earlier empty periods; more than 12 keep only the latest 12.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from ..utils.exceptions import ValidationError

DAY = 'day'
WEEK = 'week'
MONTH = 'month'

MIN_BUCKETS = 6
MAX_BUCKETS = 12
LABEL_LENGTH = 15

AT_RISK_CANCELLED = 3
AT_RISK_NO_SHOW = 2
FLAGGED_CANCELLED = 8
FLAGGED_NO_SHOW = 3


# ==================== Dates & periods ====================

def to_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value[:19]).date()
        except ValueError:
            raise ValidationError(f'Invalid date: {value}', 'date')
    raise ValidationError(f'Invalid date: {value!r}', 'date')


def _check_range(start, end):
    start, end = to_date(start), to_date(end)
    if start is None or end is None:
        raise ValidationError('start and end dates are required', 'date')
    if end < start:
        raise ValidationError('end date must not be before start date', 'end')
    return start, end


def choose_granularity(start, end) -> str:
    start, end = _check_range(start, end)
    days = (end - start).days
    if days <= 30:
        return DAY
    if days <= 90:
        return WEEK
    return MONTH


def period_start(value, granularity: str) -> date:
    d = to_date(value)
    if granularity == DAY:
        return d
    if granularity == WEEK:
        # date.weekday() is Monday=0, so Sunday is 6
        return d - timedelta(days=(d.weekday() + 1) % 7)
    return d.replace(day=1)


def shift_period(period: date, granularity: str, steps: int = 1) -> date:
    if granularity == DAY:
        return period + timedelta(days=steps)
    if granularity == WEEK:
        return period + timedelta(weeks=steps)
    return period + relativedelta(months=steps)


def period_label(period: date, granularity: str) -> str:
    if granularity == MONTH:
        return period.strftime('%b %Y')
    return period.strftime('%d %b')


def month_label(period: date) -> str:
    return period.strftime('%b')


def within(value, start: date, end: date) -> bool:
    d = to_date(value)
    return d is not None and start <= d <= end


# ==================== Bucketed trends ====================

@dataclass
class TrendBucket:
    period: date
    label: str
    count: int = 0
    total: Decimal = Decimal('0')

    def to_dict(self):
        return {
            'period': self.period.isoformat(),
            'label': self.label,
            'count': self.count,
            'total': float(self.total),
        }


class BucketSet:
    """
    The periods covering a date range, clamped to [min_buckets, max_buckets].

    Several series built from the same BucketSet line up bucket for
    bucket, which is what the dashboard sparklines need.
    """

    def __init__(self, start, end, min_buckets: int = MIN_BUCKETS, max_buckets: int = MAX_BUCKETS):
        if min_buckets < 1 or max_buckets < min_buckets:
            raise ValidationError('Invalid bucket limits', 'buckets')
        self.start, self.end = _check_range(start, end)
        self.granularity = choose_granularity(self.start, self.end)

        periods = []
        current = period_start(self.start, self.granularity)
        last = period_start(self.end, self.granularity)
        while current <= last:
            periods.append(current)
            current = shift_period(current, self.granularity)

        if len(periods) > max_buckets:
            periods = periods[-max_buckets:]
        while len(periods) < min_buckets:
            periods.insert(0, shift_period(periods[0], self.granularity, -1))

        self.periods = periods
        self._index = {period: i for i, period in enumerate(periods)}

    def __len__(self):
        return len(self.periods)

    def index_of(self, value) -> Optional[int]:
        if not within(value, self.start, self.end):
            return None
        return self._index.get(period_start(value, self.granularity))

    def empty(self) -> List[TrendBucket]:
        return [TrendBucket(p, period_label(p, self.granularity)) for p in self.periods]

    def trend(
        self,
        records: Iterable[Any],
        date_of: Callable[[Any], Any],
        amount_of: Callable[[Any], Any] = None,
    ) -> List[TrendBucket]:
        """Count records per bucket, and sum amount_of when given."""
        buckets = self.empty()
        for record in records:
            index = self.index_of(date_of(record))
            if index is None:
                continue
            buckets[index].count += 1
            if amount_of is not None:
                buckets[index].total += to_amount(amount_of(record))
        return buckets

    def distinct_trend(
        self,
        records: Iterable[Any],
        date_of: Callable[[Any], Any],
        key_of: Callable[[Any], Any],
    ) -> List[TrendBucket]:
        """Count distinct non-null keys per bucket."""
        seen = [set() for _ in self.periods]
        for record in records:
            index = self.index_of(date_of(record))
            key = key_of(record)
            if index is None or key is None:
                continue
            seen[index].add(key)
        buckets = self.empty()
        for bucket, keys in zip(buckets, seen):
            bucket.count = len(keys)
        return buckets


def bucket_trend(records, start, end, date_of, amount_of=None) -> List[TrendBucket]:
    """One-shot helper: BucketSet(start, end).trend(...)."""
    return BucketSet(start, end).trend(records, date_of, amount_of)


def to_amount(value) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    try:
        return Decimal(str(value))
    except ArithmeticError:
        return Decimal('0')


# ==================== Rankings ====================

@dataclass
class RankedItem:
    key: Any
    label: str
    value: Any

    def to_dict(self):
        value = float(self.value) if isinstance(self.value, Decimal) else self.value
        return {'key': self.key, 'label': self.label, 'value': value}


def truncate_label(name, length: int = LABEL_LENGTH) -> str:
    name = '' if name is None else str(name)
    if len(name) > length:
        return name[:length] + '...'
    return name


def top_n(
    records: Iterable[Any],
    key_of: Callable[[Any], Any],
    limit: int,
    weight_of: Callable[[Any], Any] = None,
    label_of: Callable[[Any], Any] = None,
) -> List[RankedItem]:
    """
    Group by key_of, count (or sum weight_of), highest first.

    Ties keep the order in which keys were first seen. Records whose key
    is None are skipped. Labels are truncated for display; grouping uses
    the untruncated key.
    """
    totals: Dict[Any, Any] = OrderedDict()
    labels: Dict[Any, Any] = {}
    for record in records:
        key = key_of(record)
        if key is None:
            continue
        weight = 1 if weight_of is None else to_amount(weight_of(record))
        totals[key] = totals.get(key, 0) + weight
        if key not in labels:
            labels[key] = label_of(record) if label_of else key
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [RankedItem(key, truncate_label(labels[key]), value) for key, value in ranked[:limit]]


def _category_key(booking):
    if booking.treatment is None:
        return 'Other'
    return booking.treatment.category or 'Other'


def _treatment_key(booking):
    if booking.treatment is None:
        return None
    return booking.treatment_id


def top_categories(bookings, limit: int = 3) -> List[RankedItem]:
    return top_n(bookings, _category_key, limit)


def top_treatments(bookings, limit: int = 3) -> List[RankedItem]:
    return top_n(bookings, _treatment_key, limit, label_of=lambda b: b.treatment.name)


def top_therapists(bookings, names: Dict[Any, str] = None, limit: int = 3) -> List[RankedItem]:
    """Ranks by who actually performed the treatment."""
    names = names or {}
    return top_n(
        bookings,
        lambda b: b.performed_by,
        limit,
        label_of=lambda b: names.get(b.performed_by, f'Therapist {b.performed_by}'),
    )


@dataclass
class CustomerRanking:
    user_id: str
    name: str
    total_paid: Decimal
    appointments: int

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'name': self.name,
            'total_paid': float(self.total_paid),
            'appointments': self.appointments,
        }


def top_customers(bookings, names: Dict[str, str] = None, limit: int = 5) -> List[CustomerRanking]:
    """Customers ranked by paid total. Unpaid bookings still count as appointments."""
    names = names or {}
    stats: Dict[str, CustomerRanking] = OrderedDict()
    for booking in bookings:
        if not booking.user_id:
            continue
        entry = stats.get(booking.user_id)
        if entry is None:
            entry = CustomerRanking(
                booking.user_id,
                truncate_label(names.get(booking.user_id) or booking.user_id),
                Decimal('0'),
                0,
            )
            stats[booking.user_id] = entry
        entry.appointments += 1
        if booking.is_paid:
            entry.total_paid += to_amount(booking.total_price)
    ranked = sorted(stats.values(), key=lambda c: c.total_paid, reverse=True)
    return ranked[:limit]


# ==================== Retention & alerts ====================

@dataclass
class RetentionSplit:
    new: int = 0
    returning: int = 0

    @property
    def total(self) -> int:
        return self.new + self.returning

    def to_dict(self):
        return {'new': self.new, 'returning': self.returning, 'total': self.total}


def retention_split(bookings) -> RetentionSplit:
    """Customers with exactly one booking are new; two or more are returning."""
    visits: Dict[str, int] = {}
    for booking in bookings:
        if booking.user_id:
            visits[booking.user_id] = visits.get(booking.user_id, 0) + 1
    split = RetentionSplit()
    for count in visits.values():
        if count == 1:
            split.new += 1
        else:
            split.returning += 1
    return split


def alert_status(cancelled: int, no_show: int) -> Optional[str]:
    if cancelled >= FLAGGED_CANCELLED or no_show >= FLAGGED_NO_SHOW:
        return 'flagged'
    if cancelled >= AT_RISK_CANCELLED or no_show >= AT_RISK_NO_SHOW:
        return 'at_risk'
    return None


@dataclass
class CustomerAlert:
    user_id: str
    name: str
    cancelled: int
    no_show: int
    status: str

    @property
    def severity(self) -> int:
        return self.cancelled * 2 + self.no_show

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'name': self.name,
            'cancelled': self.cancelled,
            'no_show': self.no_show,
            'status': self.status,
        }


def customer_alerts(bookings, names: Dict[str, str] = None, limit: int = None) -> List[CustomerAlert]:
    """Customers at risk or flagged, worst first. Healthy customers are omitted."""
    names = names or {}
    counts: Dict[str, List[int]] = OrderedDict()
    for booking in bookings:
        if not booking.user_id:
            continue
        status = booking.normalized_status
        if status not in ('cancelled', 'no_show'):
            continue
        entry = counts.setdefault(booking.user_id, [0, 0])
        entry[0 if status == 'cancelled' else 1] += 1

    alerts = []
    for user_id, (cancelled, no_show) in counts.items():
        status = alert_status(cancelled, no_show)
        if status:
            alerts.append(CustomerAlert(user_id, names.get(user_id) or user_id, cancelled, no_show, status))
    alerts.sort(key=lambda a: a.severity, reverse=True)
    return alerts[:limit] if limit is not None else alerts


# ==================== Monthly series ====================

def months_in_range(start, end) -> List[date]:
    start, end = _check_range(start, end)
    months = []
    current = start.replace(day=1)
    while current <= end:
        months.append(current)
        current += relativedelta(months=1)
    return months


def monthly_status_series(bookings, start, end) -> List[Dict[str, Any]]:
    """Completed and cancelled appointments per calendar month in range."""
    months = months_in_range(start, end)
    rows = OrderedDict((m, {'label': month_label(m), 'completed': 0, 'cancelled': 0}) for m in months)
    start, end = to_date(start), to_date(end)
    for booking in bookings:
        if not within(booking.booking_date, start, end):
            continue
        status = booking.normalized_status
        if status in ('completed', 'cancelled'):
            rows[to_date(booking.booking_date).replace(day=1)][status] += 1
    return list(rows.values())


def monthly_revenue_series(bookings, start, end) -> List[Dict[str, Any]]:
    months = months_in_range(start, end)
    totals = OrderedDict((m, Decimal('0')) for m in months)
    start, end = to_date(start), to_date(end)
    for booking in bookings:
        if within(booking.booking_date, start, end):
            totals[to_date(booking.booking_date).replace(day=1)] += to_amount(booking.total_price)
    return [{'label': month_label(m), 'value': float(v)} for m, v in totals.items()]


# ==================== Loyalty overview ====================

EARNED_TYPES = ('earned', 'purchase', 'transaction')
REDEEMED_TYPES = ('redeemed', 'redemption')
GROWTH_MONTHS = 9
TOP_REWARDS = 4


def is_redeemed_entry(entry) -> bool:
    kind = (entry.type or '').lower()
    return kind in REDEEMED_TYPES or entry.points < 0


def is_earned_entry(entry) -> bool:
    kind = (entry.type or '').lower()
    if kind in EARNED_TYPES:
        return True
    return entry.points > 0 and 'redeem' not in kind


def fold_tier(name, tier_order: Sequence[str], aliases: Dict[str, str]) -> str:
    """Map legacy tier names onto the current ladder. Missing means lowest."""
    if not name:
        return tier_order[0]
    for tier in tier_order:
        if name.strip().lower() == tier.lower():
            return tier
    return aliases.get(name.strip().lower(), name)


@dataclass
class LoyaltyOverview:
    total_members: int = 0
    new_members: int = 0
    average_points: float = 0.0
    rewards_redeemed: int = 0
    points_earned: int = 0
    points_redeemed: int = 0
    tier_distribution: Dict[str, int] = field(default_factory=dict)
    member_growth: List[Dict[str, Any]] = field(default_factory=list)
    points_flow: List[Dict[str, Any]] = field(default_factory=list)
    top_rewards: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        return {
            'total_members': self.total_members,
            'new_members': self.new_members,
            'average_points': self.average_points,
            'rewards_redeemed': self.rewards_redeemed,
            'points_earned': self.points_earned,
            'points_redeemed': self.points_redeemed,
            'tier_distribution': self.tier_distribution,
            'member_growth': self.member_growth,
            'points_flow': self.points_flow,
            'top_rewards': self.top_rewards,
        }


def _last_months(keys: Iterable[date], count: int) -> List[date]:
    return sorted(set(keys))[-count:]


def summarize_loyalty(
    members,
    history,
    redemptions,
    start,
    end,
    tier_order: Sequence[str],
    aliases: Dict[str, str] = None,
    reward_names: Dict[Any, str] = None,
) -> LoyaltyOverview:
    """
    Headline loyalty figures for a date range.

    members, history and redemptions are full row sets; range filtering
    for the in-range figures happens here.
    """
    start, end = _check_range(start, end)
    aliases = aliases or {}
    reward_names = reward_names or {}
    members = list(members)
    overview = LoyaltyOverview()

    overview.total_members = len(members)
    overview.new_members = sum(1 for m in members if within(m.created_at, start, end))
    if members:
        average = sum(m.total_points or 0 for m in members) / len(members)
        overview.average_points = round(average, 1)

    distribution = OrderedDict((tier, 0) for tier in tier_order)
    for member in members:
        tier = fold_tier(member.tier, tier_order, aliases)
        distribution[tier] = distribution.get(tier, 0) + 1
    overview.tier_distribution = dict(distribution)

    in_range_history = [h for h in history if within(h.created_at, start, end)]
    overview.points_earned = sum(h.points for h in in_range_history if h.points > 0 and is_earned_entry(h))
    overview.points_redeemed = sum(abs(h.points) for h in in_range_history if is_redeemed_entry(h))

    in_range_redemptions = [r for r in redemptions if within(r.redeemed_at, start, end)]
    overview.rewards_redeemed = len(in_range_redemptions)

    growth: Dict[date, int] = {}
    for member in members:
        if member.created_at:
            month = to_date(member.created_at).replace(day=1)
            growth[month] = growth.get(month, 0) + 1
    overview.member_growth = [
        {'label': month.strftime('%b %Y'), 'members': growth[month]}
        for month in _last_months(growth.keys(), GROWTH_MONTHS)
    ]

    flow: Dict[date, List[int]] = {}
    for entry in history:
        if not entry.created_at:
            continue
        month = to_date(entry.created_at).replace(day=1)
        bucket = flow.setdefault(month, [0, 0])
        if is_redeemed_entry(entry):
            bucket[1] += abs(entry.points)
        elif is_earned_entry(entry):
            bucket[0] += entry.points
    overview.points_flow = [
        {'label': month.strftime('%b %Y'), 'earned': flow[month][0], 'redeemed': flow[month][1]}
        for month in _last_months(flow.keys(), GROWTH_MONTHS)
    ]

    ranked = top_n(
        in_range_redemptions,
        lambda r: r.reward_id,
        TOP_REWARDS,
        label_of=lambda r: reward_names.get(r.reward_id, f'Reward {r.reward_id}'),
    )
    overview.top_rewards = [item.to_dict() for item in ranked]
    return overview

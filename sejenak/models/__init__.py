"""
Database models for Sejenak.
"""
from .profile import Profile, Branch, Treatment, Therapist
from .booking import Booking, BookingStatus
from .member import Member, MemberTier, seed_default_tiers, DEFAULT_TIERS
from .loyalty import (
    PointRule,
    Reward,
    RewardRedemption,
    PointsHistory,
    RecordedBooking,
    RuleType,
    RewardMethod,
    HistoryType,
    WEEKDAYS,
)

__all__ = [
    'Profile',
    'Branch',
    'Treatment',
    'Therapist',
    'Booking',
    'BookingStatus',
    'Member',
    'MemberTier',
    'seed_default_tiers',
    'DEFAULT_TIERS',
    'PointRule',
    'Reward',
    'RewardRedemption',
    'PointsHistory',
    'RecordedBooking',
    'RuleType',
    'RewardMethod',
    'HistoryType',
    'WEEKDAYS',
]

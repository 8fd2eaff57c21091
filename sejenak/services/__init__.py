"""
Business logic services for Sejenak.
"""
from .points_service import PointsService
from .tier_service import TierService
from .redemption_service import RedemptionService
from .reset_service import LoyaltyResetService
from .dashboard_service import DashboardService, LoyaltyOverviewService
from .email_service import EmailService

__all__ = [
    'PointsService',
    'TierService',
    'RedemptionService',
    'LoyaltyResetService',
    'DashboardService',
    'LoyaltyOverviewService',
    'EmailService',
]

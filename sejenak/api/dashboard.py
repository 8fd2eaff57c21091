"""
Dashboard API endpoints.

All endpoints accept:
    start, end: ISO dates (default last 30 days)
    branch_id: Limit to one branch (bookings without a branch are included)
    category: Limit to one treatment category
"""
from flask import Blueprint, request, jsonify

from ..middleware.auth import require_admin
from ..services.dashboard_service import DashboardService

dashboard_bp = Blueprint('dashboard', __name__)


def _service():
    return DashboardService(
        branch_id=request.args.get('branch_id', type=int),
        category=request.args.get('category') or None,
    )


def _range():
    return request.args.get('start'), request.args.get('end')


@dashboard_bp.route('/summary', methods=['GET'])
@require_admin
def get_summary():
    """Headline stats, trend sparklines, monthly series and top 3 lists."""
    return jsonify(_service().summary(*_range()))


@dashboard_bp.route('/top-customers', methods=['GET'])
@require_admin
def get_top_customers():
    limit = request.args.get('limit', 5, type=int)
    customers = _service().top_customers(*_range(), limit=max(1, min(limit, 50)))
    return jsonify({'customers': customers, 'count': len(customers)})


@dashboard_bp.route('/retention', methods=['GET'])
@require_admin
def get_retention():
    return jsonify(_service().retention(*_range()))


@dashboard_bp.route('/alerts', methods=['GET'])
@require_admin
def get_alerts():
    """Customers at risk or flagged for cancellations and no-shows."""
    limit = request.args.get('limit', type=int)
    alerts = _service().alerts(*_range(), limit=limit)
    return jsonify({'alerts': alerts, 'count': len(alerts)})

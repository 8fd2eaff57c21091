"""
Loyalty API endpoints.

Handles:
- Point rules management (admin)
- Tier ladder (list for everyone, edits for admin)
- Rewards catalogue and redemption
- Recording points for completed bookings and manual adjustments (admin)
- Program reset and overview (admin)
"""
from flask import Blueprint, request, jsonify, g

from ..models import Member
from ..services.dashboard_service import LoyaltyOverviewService
from ..services.points_service import PointsService
from ..services.redemption_service import RedemptionService
from ..services.reset_service import LoyaltyResetService
from ..services.tier_service import TierService, next_tier_progress
from ..middleware.auth import require_admin, require_auth
from ..utils.errors import bad_request, conflict, not_found, unprocessable, ErrorCode
from ..utils.exceptions import AuthorizationError

loyalty_bp = Blueprint('loyalty', __name__)


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


# ==============================================================================
# POINT RULES (Admin)
# ==============================================================================

@loyalty_bp.route('/point-rules', methods=['GET'])
@require_admin
def list_point_rules():
    active_only = request.args.get('active_only', 'false').lower() == 'true'
    rules = PointsService().list_rules(active_only=active_only)
    return jsonify({'rules': [r.to_dict() for r in rules], 'count': len(rules)})


@loyalty_bp.route('/point-rules', methods=['POST'])
@require_admin
def create_point_rule():
    """
    Create a point rule.

    JSON body:
        spend_amount: Spend per qualifying unit (required)
        point_earned: Points per unit (required)
        expiry: Months until earned points lapse (default 12)
        rule_type: general, category, treatment or day
        category / treatments / days: scope data for the rule type
        welcome_point: One-time bonus for first-time members
    """
    data = _json_body()
    if data is None:
        return bad_request('JSON body required')
    rule = PointsService().create_rule(data)
    return jsonify(rule.to_dict()), 201


@loyalty_bp.route('/point-rules/<int:rule_id>', methods=['PUT'])
@require_admin
def update_point_rule(rule_id):
    data = _json_body()
    if data is None:
        return bad_request('JSON body required')
    rule = PointsService().update_rule(rule_id, data)
    return jsonify(rule.to_dict())


@loyalty_bp.route('/point-rules/<int:rule_id>', methods=['DELETE'])
@require_admin
def delete_point_rule(rule_id):
    PointsService().delete_rule(rule_id)
    return jsonify({'success': True, 'deleted': rule_id})


# ==============================================================================
# TIERS
# ==============================================================================

@loyalty_bp.route('/tiers', methods=['GET'])
@require_auth
def list_tiers():
    tiers = TierService().get_tiers(active_only=g.user_role != 'admin')
    return jsonify({'tiers': [t.to_dict() for t in tiers], 'count': len(tiers)})


@loyalty_bp.route('/tiers/<int:tier_id>', methods=['PUT'])
@require_admin
def update_tier(tier_id):
    data = _json_body()
    if data is None:
        return bad_request('JSON body required')
    tier = TierService().update_tier(tier_id, data)
    return jsonify(tier.to_dict())


# ==============================================================================
# MEMBERS
# ==============================================================================

@loyalty_bp.route('/members/<user_id>', methods=['GET'])
@require_auth
def get_member(user_id):
    """Balance, tier and progress towards the next tier."""
    if g.user_role != 'admin' and g.user_id != user_id:
        raise AuthorizationError('You can only view your own membership')

    member = Member.query.filter_by(user_id=user_id).first()
    if not member:
        return not_found('Member not found')

    tier_service = TierService()
    tiers = tier_service.get_tiers()
    progress = None
    if tiers:
        progress = next_tier_progress(tier_service.member_spend(user_id), tiers).to_dict()

    return jsonify({**member.to_dict(), 'progress': progress})


@loyalty_bp.route('/members/<user_id>/adjust', methods=['POST'])
@require_admin
def adjust_member_points(user_id):
    """
    JSON body:
        points: Signed whole number of points (required)
        reason: Why the adjustment was made (required)
    """
    data = _json_body()
    if data is None:
        return bad_request('JSON body required')
    member = PointsService().adjust_points(user_id, data.get('points'), data.get('reason'))
    return jsonify(member.to_dict())


@loyalty_bp.route('/points/record/<int:booking_id>', methods=['POST'])
@require_admin
def record_booking_points(booking_id):
    result = PointsService().record_completed_booking(booking_id)
    if result.already_recorded:
        return conflict(f'Points for booking {booking_id} were already recorded')
    return jsonify(result.to_dict())


# ==============================================================================
# REWARDS
# ==============================================================================

@loyalty_bp.route('/rewards', methods=['GET'])
@require_auth
def list_rewards():
    status = request.args.get('status')
    if g.user_role != 'admin':
        status = 'Active'
    rewards = RedemptionService().list_rewards(status=status)
    return jsonify({'rewards': [r.to_dict() for r in rewards], 'count': len(rewards)})


@loyalty_bp.route('/rewards', methods=['POST'])
@require_admin
def create_reward():
    """
    JSON body:
        name: Reward name (required)
        method: Point or Stamp (default Point)
        required: Cost in points or stamps (required)
        quota: Maximum total redemptions (optional)
        min_point: Minimum points balance to redeem (optional)
        status: Active or Expired
    """
    data = _json_body()
    if data is None:
        return bad_request('JSON body required')
    if not data.get('name'):
        return bad_request('name is required', ErrorCode.MISSING_FIELD)
    reward = RedemptionService().create_reward(data)
    return jsonify(reward.to_dict()), 201


@loyalty_bp.route('/rewards/<int:reward_id>', methods=['PUT'])
@require_admin
def update_reward(reward_id):
    data = _json_body()
    if data is None:
        return bad_request('JSON body required')
    reward = RedemptionService().update_reward(reward_id, data)
    return jsonify(reward.to_dict())


@loyalty_bp.route('/rewards/<int:reward_id>', methods=['DELETE'])
@require_admin
def delete_reward(reward_id):
    RedemptionService().delete_reward(reward_id)
    return jsonify({'success': True, 'deleted': reward_id})


@loyalty_bp.route('/rewards/<int:reward_id>/redeem', methods=['POST'])
@require_auth
def redeem_reward(reward_id):
    """
    Redeem a reward.

    Customers redeem for themselves. Admins may pass user_id in the JSON
    body to redeem on a member's behalf.
    """
    data = _json_body() or {}
    user_id = g.user_id
    if data.get('user_id') and data['user_id'] != g.user_id:
        if g.user_role != 'admin':
            raise AuthorizationError('You can only redeem rewards for yourself')
        user_id = data['user_id']

    result = RedemptionService().redeem(user_id, reward_id)
    if not result.accepted:
        return unprocessable(result.rejection.message, details={
            'rejection': result.rejection.value,
            'balance': result.balance,
        })
    return jsonify(result.to_dict())


# ==============================================================================
# PROGRAM (Admin)
# ==============================================================================

@loyalty_bp.route('/overview', methods=['GET'])
@require_admin
def loyalty_overview():
    """
    Query params:
        start, end: ISO dates (default last 365 days)
    """
    data = LoyaltyOverviewService().overview(request.args.get('start'), request.args.get('end'))
    return jsonify(data)


@loyalty_bp.route('/reset', methods=['POST'])
@require_admin
def reset_program():
    """
    Wipe all balances, history, redemptions and point rules.

    JSON body:
        confirmation: must be "RESET"
    """
    data = _json_body() or {}
    counts = LoyaltyResetService().reset_program(data.get('confirmation'))
    return jsonify({'success': True, **counts})

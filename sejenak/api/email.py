"""
Email blast API.
"""
from flask import Blueprint, request, jsonify

from ..middleware.auth import require_admin
from ..services.email_service import EmailService
from ..utils.errors import bad_request, error_response, ErrorCode

email_bp = Blueprint('email', __name__)


@email_bp.route('/send', methods=['POST'])
@require_admin
def send_email_blast():
    """
    Send an email blast.

    JSON body:
        subject: Email subject (required)
        content: Plain text body (required)
        target_type: all, role, user or tier (default all)
        target_value: Role name, user id or tier name
        email_type: promo, treatment_update or booking_reminder (default promo)
        sender_email: Override the configured sender
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request('JSON body required')

    result = EmailService().send_blast(
        subject=data.get('subject'),
        content=data.get('content'),
        target_type=data.get('target_type', 'all'),
        target_value=data.get('target_value'),
        email_type=data.get('email_type', 'promo'),
        sender_email=data.get('sender_email'),
    )
    if not result['success']:
        return error_response(
            f"Email delivery failed after {result['sent']} emails",
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            502,
            details={'sent': result['sent']},
        )
    return jsonify(result)

"""
Email blast service for Sejenak.

Sends promotional, treatment update and booking reminder emails through
SendGrid. Recipients are chosen by target (everyone, a role, one user or
a loyalty tier) and filtered by their stored notification preferences.
"""
import html
import logging
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail, Personalization, To

from ..models import Member, Profile
from ..utils.exceptions import ConfigurationError, ValidationError
from .storage import PagedQuery

logger = logging.getLogger(__name__)

PLACEHOLDER_KEYS = ('', 'YOUR_SENDGRID_API_KEY')

TARGET_TYPES = ('all', 'role', 'user', 'tier')

# email_type -> preference key, header colour, header title
EMAIL_TYPES = {
    'promo': {
        'preference': 'promotionalOffers',
        'color': '#C1A7A3',
        'title': 'SEJENAK',
    },
    'treatment_update': {
        'preference': 'treatmentUpdates',
        'color': '#7C8B95',
        'title': 'TREATMENT UPDATE',
    },
    'booking_reminder': {
        'preference': 'bookingReminders',
        'color': '#8BA88E',
        'title': 'APPOINTMENT REMINDER',
    },
}


def wants_email(preferences: Optional[dict], notification_settings: Optional[dict], key: str) -> bool:
    """
    True unless the recipient opted out of this kind of email.

    notification_settings overrides the legacy preferences map for the
    same key. Only False or the string "false" opts out.
    """
    merged = dict(preferences or {})
    merged.update(notification_settings or {})
    value = merged.get(key)
    if value is False:
        return False
    if value == 'false':
        return False
    return True


def chunked(items: List[Any], size: int) -> Iterable[List[Any]]:
    for offset in range(0, len(items), size):
        yield items[offset:offset + size]


class EmailService:
    """Service for sending email blasts."""

    def __init__(self, api_key: str = None, sender_email: str = None, batch_size: int = None):
        config = current_app.config
        self.sendgrid_api_key = api_key if api_key is not None else config.get('SENDGRID_API_KEY', '')
        self.sender_email = sender_email or config.get('SENDGRID_SENDER_EMAIL', 'noreply@sejenak.com')
        self.batch_size = batch_size or config.get('EMAIL_BATCH_SIZE', 1000)

    def render_html(self, content: str, email_type: str) -> str:
        """Wrap plain text content in the branded template for email_type."""
        style = EMAIL_TYPES[email_type]
        paragraphs = ''.join(
            f'<p style="margin:0 0 16px 0;">{html.escape(line)}</p>'
            for line in content.split('\n') if line.strip()
        )
        return f'''<!DOCTYPE html>
<html>
<body style="margin:0;padding:0;background:#f7f5f3;font-family:Helvetica,Arial,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0">
    <tr>
      <td style="background:{style['color']};padding:24px;text-align:center;color:#ffffff;
                 font-size:20px;letter-spacing:4px;font-weight:bold;">{style['title']}</td>
    </tr>
    <tr>
      <td style="padding:32px;color:#333333;font-size:15px;line-height:1.6;">{paragraphs}</td>
    </tr>
    <tr>
      <td style="padding:16px;text-align:center;color:#999999;font-size:12px;">
        You can change which emails you receive in your notification settings.
      </td>
    </tr>
  </table>
</body>
</html>'''

    def select_recipients(self, target_type: str, target_value: Optional[str], email_type: str) -> List[str]:
        """Addresses matching the target that have not opted out of email_type."""
        if target_type not in TARGET_TYPES:
            raise ValidationError(f'Unknown target type: {target_type}', 'target_type')
        if target_type != 'all' and not target_value:
            raise ValidationError(f'target_value is required for target type {target_type}', 'target_value')

        query = Profile.query.filter(Profile.email.isnot(None))
        if target_type == 'role':
            query = query.filter(Profile.role == target_value)
        elif target_type == 'user':
            query = query.filter(Profile.id == target_value)
        elif target_type == 'tier':
            query = query.join(Member, Member.user_id == Profile.id).filter(Member.tier == target_value)

        preference_key = EMAIL_TYPES[email_type]['preference']
        recipients = []
        seen = set()
        for profile in PagedQuery(query, Profile.id, source='profiles'):
            address = (profile.email or '').strip()
            if '@' not in address or address.lower() in seen:
                continue
            if not wants_email(profile.preferences, profile.notification_settings, preference_key):
                continue
            seen.add(address.lower())
            recipients.append(address)
        return recipients

    def send_blast(
        self,
        subject: str,
        content: str,
        target_type: str = 'all',
        target_value: Optional[str] = None,
        email_type: str = 'promo',
        sender_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one email to every selected recipient.

        Each SendGrid call carries up to batch_size personalizations, one
        per recipient, so addresses are never exposed to each other.

        Raises:
            ValidationError: missing subject/content or unknown type/target
            ConfigurationError: SendGrid key missing or still a placeholder
        """
        if not (subject or '').strip():
            raise ValidationError('subject is required', 'subject')
        if not (content or '').strip():
            raise ValidationError('content is required', 'content')
        if email_type not in EMAIL_TYPES:
            raise ValidationError(f'Unknown email type: {email_type}', 'email_type')
        if (self.sendgrid_api_key or '').strip() in PLACEHOLDER_KEYS:
            raise ConfigurationError('SendGrid API key is not configured')

        recipients = self.select_recipients(target_type, target_value, email_type)
        if not recipients:
            logger.info(f'Email blast "{subject}" has no eligible recipients')
            return {'success': True, 'sent': 0, 'batches': 0, 'recipients': 0}

        html_body = self.render_html(content, email_type)
        sender = Email(email=sender_email or self.sender_email, name='Sejenak')
        sg = SendGridAPIClient(self.sendgrid_api_key)

        sent = 0
        batches = 0
        for batch in chunked(recipients, self.batch_size):
            message = Mail(from_email=sender, subject=subject, html_content=html_body)
            for address in batch:
                personalization = Personalization()
                personalization.add_to(To(address))
                message.add_personalization(personalization)
            try:
                response = sg.send(message)
            except Exception as e:
                logger.error(f'SendGrid batch {batches + 1} failed after {sent} emails: {e}')
                return {
                    'success': False,
                    'error': str(e),
                    'sent': sent,
                    'batches': batches,
                    'recipients': len(recipients),
                }
            batches += 1
            sent += len(batch)
            logger.info(f'SendGrid batch {batches}: {len(batch)} emails, status {response.status_code}')

        logger.info(f'Email blast "{subject}" ({email_type}) sent to {sent} recipients')
        return {'success': True, 'sent': sent, 'batches': batches, 'recipients': len(recipients)}

"""
Tests for SendGrid email blasts.

SendGridAPIClient is patched; Mail and Personalization objects are real.
"""
import pytest
from unittest.mock import patch, MagicMock

from sejenak.extensions import db
from sejenak.models import Member, Profile
from sejenak.services.email_service import EmailService, wants_email
from sejenak.utils.exceptions import ConfigurationError, ValidationError


@pytest.fixture
def audience(app):
    """Six profiles with assorted preferences and addresses."""
    db.session.add_all([
        Profile(id='p1', full_name='Alya', email='alya@example.com'),
        Profile(id='p2', full_name='Bima', email='bima@example.com',
                preferences={'promotionalOffers': False}),
        Profile(id='p3', full_name='Citra', email='citra@example.com',
                preferences={'promotionalOffers': False},
                notification_settings={'promotionalOffers': True}),
        Profile(id='p4', full_name='Dimas', email='not-an-address'),
        Profile(id='p5', full_name='Eka', email='ALYA@example.com'),
        Profile(id='p6', full_name='Fajar', email='fajar@example.com', role='therapist',
                notification_settings={'treatmentUpdates': 'false'}),
    ])
    db.session.add(Member(user_id='p3', tier='Elite'))
    db.session.commit()


def ok_response():
    response = MagicMock()
    response.status_code = 202
    return response


class TestWantsEmail:

    def test_default_is_opted_in(self):
        assert wants_email(None, None, 'promotionalOffers')

    def test_notification_settings_override_preferences(self):
        assert wants_email({'promotionalOffers': False}, {'promotionalOffers': True}, 'promotionalOffers')
        assert not wants_email({'promotionalOffers': True}, {'promotionalOffers': 'false'}, 'promotionalOffers')

    def test_only_exact_false_string_opts_out(self):
        assert wants_email(None, {'promotionalOffers': ' FALSE '}, 'promotionalOffers')
        assert wants_email(None, {'promotionalOffers': 'False'}, 'promotionalOffers')


class TestSelectRecipients:
    """Test audience targeting and preference filtering."""

    def test_everyone_opted_in(self, app, audience):
        recipients = EmailService().select_recipients('all', None, 'promo')
        assert recipients == ['alya@example.com', 'citra@example.com', 'fajar@example.com']

    def test_role_target(self, app, audience):
        assert EmailService().select_recipients('role', 'therapist', 'promo') == ['fajar@example.com']
        assert EmailService().select_recipients('role', 'therapist', 'treatment_update') == []

    def test_tier_target(self, app, audience):
        assert EmailService().select_recipients('tier', 'Elite', 'promo') == ['citra@example.com']

    def test_user_target_requires_value(self, app, audience):
        with pytest.raises(ValidationError):
            EmailService().select_recipients('user', None, 'promo')

    def test_unknown_target(self, app):
        with pytest.raises(ValidationError):
            EmailService().select_recipients('branch', '1', 'promo')


class TestSendBlast:
    """Test batching and failure handling."""

    @patch('sejenak.services.email_service.SendGridAPIClient')
    def test_batches_one_personalization_per_recipient(self, mock_client_class, app, audience):
        mock_client = MagicMock()
        mock_client.send.return_value = ok_response()
        mock_client_class.return_value = mock_client

        result = EmailService(batch_size=2).send_blast('Spa week', 'Line one\nLine two')

        assert result == {'success': True, 'sent': 3, 'batches': 2, 'recipients': 3}
        mock_client_class.assert_called_once_with('SG.test-key')
        sizes = [len(call.args[0].personalizations) for call in mock_client.send.call_args_list]
        assert sizes == [2, 1]

    @patch('sejenak.services.email_service.SendGridAPIClient')
    def test_failed_batch_reports_progress(self, mock_client_class, app, audience):
        mock_client = MagicMock()
        mock_client.send.side_effect = [ok_response(), Exception('HTTP 401 Unauthorized')]
        mock_client_class.return_value = mock_client

        result = EmailService(batch_size=2).send_blast('Spa week', 'Hello')

        assert result['success'] is False
        assert result['sent'] == 2
        assert result['batches'] == 1
        assert 'Unauthorized' in result['error']

    @patch('sejenak.services.email_service.SendGridAPIClient')
    def test_no_recipients_sends_nothing(self, mock_client_class, app):
        result = EmailService().send_blast('Spa week', 'Hello')
        assert result == {'success': True, 'sent': 0, 'batches': 0, 'recipients': 0}
        mock_client_class.assert_not_called()

    def test_placeholder_key_rejected(self, app, audience):
        with pytest.raises(ConfigurationError):
            EmailService(api_key='YOUR_SENDGRID_API_KEY').send_blast('Spa week', 'Hello')

    def test_subject_required(self, app):
        with pytest.raises(ValidationError):
            EmailService().send_blast('  ', 'Hello')

    def test_unknown_email_type(self, app):
        with pytest.raises(ValidationError):
            EmailService().send_blast('Spa week', 'Hello', email_type='newsletter')

    def test_render_html_escapes_content(self, app):
        body = EmailService().render_html('<b>50% off</b>', 'booking_reminder')
        assert '&lt;b&gt;50% off&lt;/b&gt;' in body
        assert 'APPOINTMENT REMINDER' in body


class TestEmailAPI:
    """Test POST /api/email/send."""

    @patch('sejenak.services.email_service.SendGridAPIClient')
    def test_send(self, mock_client_class, client, admin_headers, audience):
        mock_client = MagicMock()
        mock_client.send.return_value = ok_response()
        mock_client_class.return_value = mock_client

        response = client.post('/api/email/send', headers=admin_headers, json={
            'subject': 'Your Elite perks',
            'content': 'Enjoy a free upgrade this month.',
            'target_type': 'tier',
            'target_value': 'Elite',
        })

        assert response.status_code == 200
        assert response.get_json()['sent'] == 1

    @patch('sejenak.services.email_service.SendGridAPIClient')
    def test_delivery_failure(self, mock_client_class, client, admin_headers, audience):
        mock_client = MagicMock()
        mock_client.send.side_effect = Exception('HTTP 500')
        mock_client_class.return_value = mock_client

        response = client.post('/api/email/send', headers=admin_headers, json={
            'subject': 'Spa week',
            'content': 'Hello',
        })

        assert response.status_code == 502
        error = response.get_json()['error']
        assert error['code'] == 'EXTERNAL_SERVICE_ERROR'
        assert error['sent'] == 0

    def test_missing_subject(self, client, admin_headers):
        response = client.post('/api/email/send', headers=admin_headers, json={'content': 'Hello'})
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_SUBJECT'

    def test_admin_only(self, client, customer_headers):
        response = client.post('/api/email/send', headers=customer_headers, json={'subject': 'x', 'content': 'y'})
        assert response.status_code == 403

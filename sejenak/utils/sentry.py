"""
Optional Sentry error reporting.
"""
import logging
import os

import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)


def init_sentry(app) -> bool:
    """
    Start Sentry when SENTRY_DSN is configured.

    Returns:
        True if reporting was enabled
    """
    dsn = app.config.get('SENTRY_DSN')
    if not dsn:
        logger.debug('SENTRY_DSN not set, error reporting disabled')
        return False

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FlaskIntegration(),
            # Breadcrumbs from INFO, events from ERROR
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        environment=os.getenv('FLASK_ENV', 'development'),
        traces_sample_rate=app.config.get('SENTRY_TRACES_SAMPLE_RATE', 0),
        send_default_pii=False,
    )
    logger.info('Sentry error reporting enabled')
    return True

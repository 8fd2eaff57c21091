"""
CLI Commands for Sejenak.

Usage:
    flask loyalty seed-tiers           # Install Grace/Signature/Elite
    flask loyalty recalculate-tiers    # Reclassify every member by spend
    flask loyalty verify-balances      # Compare balances with points history
    flask loyalty reset --yes          # Wipe balances, history, redemptions and rules
"""
from .loyalty import init_app as init_loyalty_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_loyalty_commands(app)

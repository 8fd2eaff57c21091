"""
Loyalty maintenance commands.

recalculate-tiers and verify-balances are safe to run from cron:

# Nightly tier recalculation
0 2 * * * cd /app && flask loyalty recalculate-tiers

# Weekly balance audit
0 3 * * 1 cd /app && flask loyalty verify-balances
"""
import warnings

import click
from flask import current_app
from flask.cli import with_appcontext

from ..models import seed_default_tiers
from ..services.points_service import PointsService
from ..services.reset_service import LoyaltyResetService
from ..services.tier_service import TierService
from ..utils.exceptions import InconsistentStateWarning


@click.group('loyalty')
def loyalty_cli():
    """Loyalty program commands."""
    pass


@loyalty_cli.command('seed-tiers')
@with_appcontext
def seed_tiers():
    """Install the default tier ladder."""
    created = seed_default_tiers()
    click.echo(f"Created {created} tier(s)")


@loyalty_cli.command('recalculate-tiers')
@with_appcontext
def recalculate_tiers():
    """Reclassify every member from their completed booking spend."""
    stats = TierService().recalculate_all_tiers()
    click.echo(f"Checked {stats['checked']} members, {stats['changed']} changed tier")


@loyalty_cli.command('verify-balances')
@with_appcontext
def verify_balances():
    """Report members whose balance differs from their points history."""
    with warnings.catch_warnings():
        # Mismatches are echoed below
        warnings.simplefilter('ignore', InconsistentStateWarning)
        mismatches = PointsService().verify_all_balances()

    if not mismatches:
        click.echo("All balances match the points history")
        return
    click.echo(f"{len(mismatches)} inconsistent balance(s):")
    for check in mismatches:
        click.echo(
            f"  {check.user_id}: stored {check.stored_balance}, history {check.history_balance}"
        )


@loyalty_cli.command('reset')
@click.option('--yes', is_flag=True, help='Confirm the reset without prompting')
@with_appcontext
def reset_program(yes):
    """
    Zero every balance and tier, and delete history, redemptions and rules.

    This cannot be undone.
    """
    if not yes:
        click.confirm('This permanently wipes the loyalty program. Continue?', abort=True)
    counts = LoyaltyResetService().reset_program(current_app.config['RESET_CONFIRMATION'])
    click.echo(
        f"Reset {counts['members_reset']} members; deleted {counts['history_deleted']} history entries, "
        f"{counts['redemptions_deleted']} redemptions and {counts['rules_deleted']} rules"
    )


def init_app(app):
    app.cli.add_command(loyalty_cli)

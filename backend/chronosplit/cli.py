# Overview: Flask CLI command groups for bootstrap, shop install, releases, and the audit log.

# backend/chronosplit/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to chronosplit (PowerShell: $env:FLASK_APP="chronosplit").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Shops:
# - python -m flask shops install --shop demo.myshopify.com --access-token shpat_xxx
#   Store Admin API credentials and print a new operator API token.
# - python -m flask shops list
#
# Holds:
# - python -m flask holds release --shop demo.myshopify.com [--filter "Widget"] [--order-id gid://shopify/Order/1]
#   Release pre-sale holds (all held orders when no --order-id is given).
#
# Audit:
# - python -m flask audit list --shop demo.myshopify.com --limit 20

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import (
    audit_service,
    configuration_service,
    held_order_service,
    release_service,
    shop_session_service,
    shopify_client,
)
from .services.release_service import ReleaseBatchError
from .services.shop_session_service import ShopSessionError
from .services.shopify_client import ShopifyApiError
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


# =============================================================================
# SHOP COMMANDS
# =============================================================================

@click.group('shops')
def shops_group():
    """Installed shop management commands."""


@shops_group.command('install')
@click.option('--shop', required=True, help='Shop domain (xxx.myshopify.com)')
@click.option('--access-token', required=True, help='Admin API access token')
@click.option('--scope', default=None, help='Granted access scopes')
@with_appcontext
def install_shop_cli(shop, access_token, scope):
    """Install a shop and print its operator API token."""
    try:
        session, token = shop_session_service.install_shop(shop, access_token, scope)
    except ShopSessionError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Installed {session.shop}")
    click.echo(f"Operator API token (shown once): {token}")


@shops_group.command('list')
@with_appcontext
def list_shops():
    """List installed shops and their pre-sale location."""
    sessions = shop_session_service.list_sessions()

    if not sessions:
        click.echo("No shops installed.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Shop':<40} {'Installed':<22} {'Pre-sale location'}")
    click.echo("="*80)

    for session in sessions:
        location_id = configuration_service.get_location_id(session.shop) or '-'
        click.echo(f"{session.shop:<40} {to_utc_z(session.installed_at) or '-':<22} {location_id}")

    click.echo("="*80 + "\n")


# =============================================================================
# HOLD COMMANDS
# =============================================================================

@click.group('holds')
def holds_group():
    """Pre-sale hold commands."""


@holds_group.command('release')
@click.option('--shop', required=True, help='Shop domain')
@click.option('--filter', 'item_filter', default=None, help='Only release line items whose title contains this text')
@click.option('--order-id', 'order_ids', multiple=True, help='Order GID (repeatable); defaults to all held orders')
@click.option('--continue-on-error', is_flag=True, help='Keep going when an order fails')
@with_appcontext
def release_holds_cli(shop, item_filter, order_ids, continue_on_error):
    """Release pre-sale holds, splitting partially matching orders."""
    location_id = configuration_service.get_location_id(shop)
    if not location_id:
        click.echo("FAIL No pre-sale location configured for this shop")
        return

    try:
        client = shopify_client.client_for_shop(shop)
    except ShopSessionError as e:
        click.echo(f"FAIL {e}")
        return

    with client:
        try:
            targets = list(order_ids)
            if not targets:
                targets = [v.id for v in held_order_service.list_held_orders(client, location_id, item_filter)]
            if not targets:
                click.echo("No matching held orders found.")
                return

            outcome = release_service.run_release(
                client, shop, location_id, targets, item_filter,
                continue_on_error=continue_on_error or None,
            )
        except ReleaseBatchError as e:
            click.echo(f"FAIL {e} (released {e.outcome.released} before the failure)")
            return
        except ShopifyApiError as e:
            click.echo(f"FAIL Shopify request failed: {e}")
            return

    click.echo(f"PASS {release_service.describe_release(outcome, item_filter)}")
    if outcome.failed:
        click.echo(f"WARN {outcome.failed} order(s) failed")


# =============================================================================
# AUDIT COMMANDS
# =============================================================================

@click.group('audit')
def audit_group():
    """Audit log commands."""


@audit_group.command('list')
@click.option('--shop', required=True, help='Shop domain')
@click.option('--limit', type=int, default=None, help='Number of entries')
@with_appcontext
def list_audit(shop, limit):
    """Show recent audit entries, newest first."""
    entries = audit_service.list_recent(shop, limit)
    if not entries:
        click.echo("No audit entries.")
        return
    for entry in entries:
        click.echo(f"{to_utc_z(entry.created_at)}  {entry.action:<14} {entry.description}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shops_group)
    app.cli.add_command(holds_group)
    app.cli.add_command(audit_group)

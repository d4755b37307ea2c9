import os
import click
from flask import current_app
from flask.cli import with_appcontext
from cartapi.context import cart_context
from flask_migrate import upgrade as alembic_upgrade, stamp as alembic_stamp, migrate as alembic_migrate


def _assert_safe_for_upgrade():
    # Prevent accidental prod upgrades unless explicitly allowed
    env = (current_app.config.get("ENV") or "").lower()
    app_env = (os.getenv("APP_ENV") or "").lower()
    if app_env == "production" or env == "production":
        if (os.getenv("ALLOW_DB_MIGRATIONS") or "").lower() not in ("1", "true", "yes"):
            raise click.ClickException("Refusing to run DB migration in production without ALLOW_DB_MIGRATIONS=true")


@click.command("db-migrate-safe")
@click.option("-m", "--message", default="auto migration", help="Migration message")
@with_appcontext
def db_migrate_safe(message):
    """Generate a new migration script from current models."""
    alembic_migrate(message=message)
    click.echo("Migration script generated.")


@click.command("db-upgrade-safe")
@with_appcontext
def db_upgrade_safe():
    """Apply migrations to the configured database."""
    _assert_safe_for_upgrade()
    alembic_upgrade()
    click.echo("Database upgraded.")


@click.command("db-stamp-safe")
@click.option("--revision", default="head", help="Revision to stamp, default 'head'")
@with_appcontext
def db_stamp_safe(revision):
    """Mark the database at a given revision without running migrations."""
    _assert_safe_for_upgrade()
    alembic_stamp(revision)
    click.echo(f"Database stamped at {revision}.")


@click.command("carts-sweep")
@with_appcontext
def carts_sweep():
    """Delete expired session and cart rows."""
    removed = cart_context().store.sweep_expired()
    click.echo(f"Removed {removed} expired cart rows.")


@click.command("carts-transfer")
@click.option("--force", is_flag=True, help="Run again even if the transfer already completed")
@click.option("--batch-size", default=100, show_default=True)
@with_appcontext
def carts_transfer(force, batch_size):
    """Copy legacy session rows into the durable cart table."""
    ctx = cart_context()
    moved = ctx.store.transfer(rebuild=ctx.engine.rebuild, batch_size=batch_size, force=force)
    click.echo(f"Transferred {moved} sessions.")


@click.command("carts-stats")
@with_appcontext
def carts_stats():
    """Print cart counts by state and source."""
    stats = cart_context().store.stats()
    for key in ("in_session", "total", "active", "expiring", "expired"):
        click.echo(f"{key}: {stats[key]}")
    for source, count in stats["source"].items():
        click.echo(f"source.{source}: {count}")


def register_cli(app):
    app.cli.add_command(db_migrate_safe)
    app.cli.add_command(db_upgrade_safe)
    app.cli.add_command(db_stamp_safe)
    app.cli.add_command(carts_sweep)
    app.cli.add_command(carts_transfer)
    app.cli.add_command(carts_stats)

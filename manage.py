# manage.py
# Usage: python manage.py <command>   (or: flask --app manage <command>)
import json

import click
from flask.cli import FlaskGroup, with_appcontext

from app import create_app
from extensions import db


def _echo(result):
    click.echo(json.dumps(result, default=str, indent=2))


@click.group(cls=FlaskGroup, create_app=create_app)
def cli():
    """Management commands for the yield ledger."""


@cli.command("init-db")
@with_appcontext
def init_db():
    """Create any missing tables (use `flask db upgrade` for migrations)."""
    import models  # noqa: F401
    db.create_all()
    click.echo("Database tables created")


# ==========================================================
#                  POSTING PROCESSES
# ==========================================================
@cli.command("run-daily-accrual")
@click.option("--user-id", type=int, default=None, help="Only catch up this user's subscriptions.")
@with_appcontext
def run_daily_accrual_command(user_id):
    from ledger.engine import run_daily_accrual
    _echo(run_daily_accrual(user_id=user_id))


@cli.command("run-realtime")
@click.option("--user-id", type=int, default=None)
@with_appcontext
def run_realtime_command(user_id):
    from ledger.engine import run_realtime_poster
    _echo(run_realtime_poster(user_id=user_id))


@cli.command("run-payout")
@click.option("--day", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Source day to pay out (default: business yesterday).")
@with_appcontext
def run_payout_command(day):
    from ledger.engine import run_referral_payout
    _echo(run_referral_payout(day.date() if day else None))


@cli.command("rerate-day")
@click.option("--day", type=click.DateTime(formats=["%Y-%m-%d"]), required=True,
              help="Source day whose pending commissions are re-posted at the current rates.")
@with_appcontext
def rerate_day_command(day):
    from ledger.engine import get_ledger
    _echo(get_ledger().commissions.rerate_day(day.date()))


@cli.command("run-scheduler")
@with_appcontext
def run_scheduler_command():
    """Run the posting loops in the foreground until interrupted."""
    import gevent
    from flask import current_app
    from ledger.scheduler import start_background_tasks, stop_background_tasks

    app = current_app._get_current_object()
    tasks = start_background_tasks(app)
    click.echo(f"Running {len(tasks)} background task(s); Ctrl+C to stop")
    try:
        gevent.joinall([t.greenlet for t in tasks])
    except KeyboardInterrupt:
        stop_background_tasks(app)


# ==========================================================
#                  BACK-OFFICE
# ==========================================================
@cli.command("verify-deposit")
@click.argument("deposit_id", type=int)
@with_appcontext
def verify_deposit_command(deposit_id):
    from ledger.engine import get_ledger
    _echo(get_ledger().funds.verify_deposit(deposit_id).to_dict())


@cli.command("reject-deposit")
@click.argument("deposit_id", type=int)
@with_appcontext
def reject_deposit_command(deposit_id):
    from ledger.engine import get_ledger
    _echo(get_ledger().funds.reject_deposit(deposit_id).to_dict())


@cli.command("set-withdrawal-status")
@click.argument("withdrawal_id", type=int)
@click.argument("status")
@with_appcontext
def set_withdrawal_status_command(withdrawal_id, status):
    from ledger.engine import get_ledger
    _echo(get_ledger().funds.set_withdrawal_status(withdrawal_id, status).to_dict())


@cli.command("set-cashout-status")
@click.argument("cashout_id", type=int)
@click.argument("status")
@with_appcontext
def set_cashout_status_command(cashout_id, status):
    from ledger.engine import get_ledger
    _echo(get_ledger().funds.set_cashout_status(cashout_id, status).to_dict())


@cli.command("add-bank")
@click.argument("code")
@click.argument("name")
@click.option("--channel", default=None, help="Transfer rail, e.g. instapay or pesonet.")
@click.option("--inactive", is_flag=True, default=False)
@with_appcontext
def add_bank_command(code, name, channel, inactive):
    from ledger.engine import get_ledger
    _echo(get_ledger().funds.add_bank(code, name, channel=channel, active=not inactive).to_dict())


@cli.command("list-banks")
@with_appcontext
def list_banks_command():
    from ledger.engine import get_ledger
    _echo([bank.to_dict() for bank in get_ledger().funds.list_banks()])


@cli.command("task-health")
@with_appcontext
def task_health_command():
    from ledger.engine import get_ledger
    _echo(get_ledger().health_report())


if __name__ == "__main__":
    cli()

"""CLI entry point for Momental.

Commands:
    momental status                  Settings, balance, entry count, persistence
    momental spend AMOUNT [--note]   Record a new spend entry
    momental list [--limit N]        Entries, newest first
    momental delete ID               Delete an entry (unknown ids are ignored)
    momental settings [...]          Edit daily budget, start balance, start date
    momental persist                 Request durable storage
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime

from src.ledger.amounts import format_amount

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on MOMENTAL_LOG_LEVEL env var."""
    level = os.environ.get("MOMENTAL_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config from MOMENTAL_CONFIG, if set."""
    from src.config import Config

    return Config(os.environ.get("MOMENTAL_CONFIG") or None)


def _get_store(config):
    """Create a Store for the configured database. MOMENTAL_DB_PATH wins."""
    from src.database.repository import Store

    db_path = os.environ.get("MOMENTAL_DB_PATH") or config.db_path
    return Store(db_path=db_path)


def _open_session():
    """Start a BudgetSession, or return None after printing why it failed."""
    from src.database.errors import TransactionFailure
    from src.ledger.bootstrap import Unavailable
    from src.ledger.session import BudgetSession

    config = _get_config()
    session = BudgetSession(_get_store(config), config=config)
    try:
        state = session.start()
    except TransactionFailure as e:
        print(f"Error: Could not load settings: {e}")
        session.close()
        return None
    if isinstance(state, Unavailable):
        print(f"Error: {state.error}")
        session.close()
        return None
    return session


def _money(value) -> str:
    if value is None:
        return "n/a"
    return f"${format_amount(value)}"


# ── Command handlers ─────────────────────────────────────


def cmd_status(args: argparse.Namespace) -> int:
    """Show settings and the current remaining balance."""
    from src.ledger.balance import days_elapsed

    session = _open_session()
    if session is None:
        return 1

    try:
        settings = session.settings
        now = session.clock.now()
        print("Momental Status")
        print("=" * 40)
        print(f"  Balance:        {_money(session.balance())}")
        print(f"  Daily budget:   {_money(settings.daily_budget)}")
        print(f"  Start balance:  {_money(settings.start_amount)}")
        print(f"  Start date:     {settings.start_date:%Y-%m-%d}")
        print(f"  Days elapsed:   {days_elapsed(settings, now)}")
        print(f"  Entries:        {len(session.entries):,}")
        persisted = session.persistence.persisted()
        print(f"  Storage:        {'persisted' if persisted else 'not persisted'}")
    finally:
        session.close()
    return 0


def cmd_spend(args: argparse.Namespace) -> int:
    """Record a new spend entry."""
    from src.database.errors import TransactionFailure
    from src.ledger.amounts import InvalidAmount, parse_spend_amount

    try:
        amount = parse_spend_amount(args.amount)
    except InvalidAmount as e:
        print(f"Error: {e}")
        return 1

    session = _open_session()
    if session is None:
        return 1

    try:
        entry = session.add_entry(amount, note=args.note)
    except TransactionFailure as e:
        print(f"Error: Could not save entry: {e}")
        return 1
    else:
        print(f"Added #{entry.id}: {_money(entry.amount)}")
        print(f"Balance: {_money(session.balance())}")
        return 0
    finally:
        session.close()


def cmd_list(args: argparse.Namespace) -> int:
    """List entries, newest first."""
    session = _open_session()
    if session is None:
        return 1

    try:
        entries = session.entries
        if args.limit is not None:
            entries = entries[: args.limit]
        if not entries:
            print("No entries.")
            return 0
        for entry in entries:
            note = f"  {entry.note}" if entry.note else ""
            print(
                f"  #{entry.id:<5} {entry.timestamp:%Y-%m-%d %H:%M:%S}"
                f"  {format_amount(entry.amount):>10}{note}"
            )
    finally:
        session.close()
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete an entry by id."""
    from src.database.errors import TransactionFailure

    session = _open_session()
    if session is None:
        return 1

    try:
        session.delete_entry(args.id)
    except TransactionFailure as e:
        print(f"Error: Could not delete entry: {e}")
        return 1
    else:
        print(f"Deleted #{args.id}.")
        print(f"Balance: {_money(session.balance())}")
        return 0
    finally:
        session.close()


def cmd_settings(args: argparse.Namespace) -> int:
    """Show or edit settings. Edits are committed through the draft controller."""
    from src.database.errors import TransactionFailure

    start_date = None
    if args.start_date is not None:
        try:
            start_date = datetime.strptime(args.start_date, "%Y-%m-%d")
        except ValueError:
            print(f"Error: Invalid start date '{args.start_date}' (expected YYYY-MM-DD)")
            return 1

    session = _open_session()
    if session is None:
        return 1

    editor = session.editor()
    try:
        if args.daily_budget is not None or args.start_amount is not None or start_date:
            editor.edit(
                daily_budget=args.daily_budget,
                start_amount=args.start_amount,
                start_date=start_date,
            )
            try:
                editor.flush()
            except TransactionFailure as e:
                print(f"Error: Could not save settings: {e}")
                return 1

        settings = session.settings
        print(f"daily budget:  {format_amount(settings.daily_budget)}")
        print(f"start balance: {format_amount(settings.start_amount)}")
        print(f"start date:    {settings.start_date:%Y-%m-%d}")
        return 0
    finally:
        editor.close()
        session.close()


def cmd_persist(args: argparse.Namespace) -> int:
    """Request durable storage for the database."""
    session = _open_session()
    if session is None:
        return 1

    try:
        if session.persistence.persist():
            print("data persisted")
        else:
            print("persistence not available for this database")
    finally:
        session.close()
    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "status": cmd_status,
    "spend": cmd_spend,
    "list": cmd_list,
    "delete": cmd_delete,
    "settings": cmd_settings,
    "persist": cmd_persist,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="momental",
        description="Momental daily budget tracker",
    )
    subparsers = parser.add_subparsers(dest="command")

    # status
    subparsers.add_parser("status", help="Show balance and settings")

    # spend
    spend_p = subparsers.add_parser("spend", help="Record a new spend")
    spend_p.add_argument("amount", help="Amount spent")
    spend_p.add_argument("--note", help="Optional note")

    # list
    list_p = subparsers.add_parser("list", help="List entries, newest first")
    list_p.add_argument("--limit", type=int, help="Show at most N entries")

    # delete
    delete_p = subparsers.add_parser("delete", help="Delete an entry")
    delete_p.add_argument("id", type=int, help="Entry ID")

    # settings
    settings_p = subparsers.add_parser("settings", help="Show or edit settings")
    settings_p.add_argument("--daily-budget", help="Daily allowance")
    settings_p.add_argument("--start-amount", help="Balance on the start date")
    settings_p.add_argument("--start-date", help="First budget day (YYYY-MM-DD)")

    # persist
    subparsers.add_parser("persist", help="Request durable storage")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()

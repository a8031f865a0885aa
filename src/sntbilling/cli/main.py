"""Main CLI entry point."""

import logging

import click
from sntbilling.database.factories import create_memory_database, create_sqlite_database
from sntbilling.utils.log_config import setup_logging, teardown_logging

# Import and register all commands at module level
from sntbilling.cli.commands import (
    period,
    tariff,
    accrual,
    payment,
    allocate,
    report,
    penalty,
)

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides SNTBILLING_DB_PATH environment variable)",
    envvar="SNTBILLING_DB_PATH",
)
@click.option("--memory", is_flag=True, help="Use a throwaway in-memory store")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, db_path: str | None, memory: bool, verbose: bool):
    """SNT billing - periods, tariffs, accruals and payments of a garden partnership.

    Charge fees to plots, record payments and distribute them onto the
    oldest outstanding charges, then report who owes what.
    """
    ctx.ensure_object(dict)
    setup_logging(verbose=verbose)
    ctx.call_on_close(teardown_logging)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        if memory:
            db = create_memory_database()
        else:
            db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)
        logger.debug(f"Using {'in-memory store' if memory else 'database ' + str(db_path or 'default')}")


# Register all commands
period.register_commands(cli)
tariff.register_commands(cli)
accrual.register_commands(cli)
payment.register_commands(cli)
allocate.register_commands(cli)
report.register_commands(cli)
penalty.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

import click
from flask.cli import AppGroup

from errors import AppError

from .pipeline import run_statement
from .status import retry_failed
from .worker import enqueue

statements_cli = AppGroup("statements", help="Operate on uploaded bank statements.")


@statements_cli.command("retry-failed")
@click.option("--user-id", type=int, default=None, help="Only reset this user's statements.")
@click.option("--run/--no-run", default=False, help="Process the reset statements right away.")
def retry_failed_command(user_id, run):
    """Reset FAILED statements to PENDING so they can be processed again."""
    ids = retry_failed(user_id=user_id)
    click.echo(f"Reset {len(ids)} statement(s): {', '.join(map(str, ids)) or '-'}")
    if not run:
        enqueue(ids)
        return
    for sid in ids:
        _process(sid)


@statements_cli.command("process")
@click.argument("statement_id", type=int)
def process_command(statement_id):
    """Process one PENDING statement in the foreground."""
    _process(statement_id)


def _process(statement_id: int) -> None:
    try:
        statement = run_statement(statement_id)
    except AppError as e:
        click.echo(f"Statement {statement_id}: {e.message}", err=True)
        return
    click.echo(
        f"Statement {statement_id}: {statement.status} "
        f"({statement.processed_count}/{statement.record_count} records)"
    )

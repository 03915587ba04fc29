"""Command-line interface for the debt calculator.

This module uses the ``click`` library to implement a multi-command interface
over a persistent :class:`~debt_calc.store.LoanStore`. Users can list their
loans with portfolio totals, inspect a loan's summary or schedule, edit
loans and UI preferences, and export the summary table to CSV. Undo history
lives only as long as the process, so ``undo`` is most useful inside the
interactive ``shell`` command.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .editing import sanitize_patch
from .engine import summarize_loan
from .formatter import export_to_csv, print_portfolio, print_schedule, print_summary
from .portfolio import loan_rows, portfolio_kpis
from .storage import create_storage_from_env
from .store import LoanStore
from .utils import parse_amount

logger = logging.getLogger(__name__)

MAX_SCHEDULE_ROWS = 120


def _parse_money(name: str, value: Optional[str]) -> Optional[Any]:
    if value is None:
        return None
    try:
        return parse_amount(value)
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}", param_hint=name)


def build_patch(
    description: Optional[str],
    principal: Optional[str],
    start_date: Optional[str],
    rate: Optional[str],
    tenure: Optional[int],
    tenure_years: Optional[float],
    extra: Optional[str],
) -> Dict[str, Any]:
    """Collect the supplied options into a sanitized loan patch."""
    raw: Dict[str, Any] = {}
    if description is not None:
        raw["description"] = description
    if principal is not None:
        raw["principal"] = _parse_money("--principal", principal)
    if start_date is not None:
        raw["start_date"] = start_date
    if rate is not None:
        raw["annual_rate"] = rate.rstrip("%")
    if tenure is not None:
        raw["tenure_months"] = tenure
    if tenure_years is not None:
        raw["tenure_years"] = tenure_years
    if extra is not None:
        raw["extra_monthly"] = _parse_money("--extra", extra)
    try:
        return sanitize_patch(raw)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def _require_loan(store: LoanStore, loan_id: str):
    loan = store.get_loan(loan_id)
    if loan is None:
        raise click.BadParameter(f"Unknown loan id: {loan_id}", param_hint="LOAN_ID")
    return loan


@click.group()
@click.option("--db", "database_url", envvar="DEBTCALC_DATABASE_URL", help="SQLAlchemy URL of the state database")
@click.option("--max-history", "max_history", envvar="DEBTCALC_MAX_HISTORY", type=int, help="Maximum undo depth")
@click.option(
    "--log-level",
    "log_level",
    envvar="DEBTCALC_LOG_LEVEL",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity",
)
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str], max_history: Optional[int], log_level: str) -> None:
    """Track loans and see how extra monthly payments shorten them."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    if ctx.obj is None:
        ctx.obj = LoanStore(create_storage_from_env(database_url), max_history=max_history)


@cli.command("list")
@click.pass_obj
def list_loans(store: LoanStore) -> None:
    """Show the loan table and portfolio totals."""
    ui = store.ui
    loans = store.loans
    rows = loan_rows(loans, ui)
    for loan, summary in rows:
        if summary.non_amortizing:
            logger.debug("Loan %s never amortizes at its current terms", loan.id)
    print_portfolio(rows, portfolio_kpis(loans, ui), selected_id=ui.selected_id)


@cli.command()
@click.argument("loan_id")
@click.pass_obj
def show(store: LoanStore, loan_id: str) -> None:
    """Print the summary of one loan."""
    loan = _require_loan(store, loan_id)
    print_summary(loan, summarize_loan(loan))


@cli.command()
@click.argument("loan_id")
@click.option("--baseline", is_flag=True, help="Show the schedule without extra payments")
@click.option("--all", "show_all", is_flag=True, help="Print every row")
@click.pass_obj
def schedule(store: LoanStore, loan_id: str, baseline: bool, show_all: bool) -> None:
    """Print the amortization schedule of one loan."""
    loan = _require_loan(store, loan_id)
    summary = summarize_loan(loan)
    rows = summary.schedule_base if baseline else summary.schedule
    if not show_all and len(rows) > MAX_SCHEDULE_ROWS:
        click.echo(f"Schedule has {len(rows)} rows; showing first {MAX_SCHEDULE_ROWS} rows.")
        rows = rows[:MAX_SCHEDULE_ROWS]
    print_schedule(rows)


@cli.command()
@click.pass_obj
def add(store: LoanStore) -> None:
    """Add a loan with default terms."""
    loan = store.add_loan()
    click.echo(f"Added {loan.id}")


@cli.command()
@click.argument("loan_id")
@click.option("--description", help="Free-text label")
@click.option("--principal", "-p", help="Loan amount (accepts k/l/m suffixes)")
@click.option("--start-date", "-s", "start_date", help="Start date (YYYY-MM-DD)")
@click.option("--rate", "-r", help="Annual interest rate (percent, clamped to 0-30)")
@click.option("--tenure", "-t", type=int, help="Tenure in months")
@click.option("--tenure-years", "tenure_years", type=float, help="Tenure in years")
@click.option("--extra", "-e", help="Extra monthly payment")
@click.pass_obj
def update(
    store: LoanStore,
    loan_id: str,
    description: Optional[str],
    principal: Optional[str],
    start_date: Optional[str],
    rate: Optional[str],
    tenure: Optional[int],
    tenure_years: Optional[float],
    extra: Optional[str],
) -> None:
    """Edit fields of a loan."""
    patch = build_patch(description, principal, start_date, rate, tenure, tenure_years, extra)
    if not patch:
        raise click.UsageError("Nothing to update; pass at least one field option")
    if store.get_loan(loan_id) is None:
        click.echo(f"No loan with id {loan_id}; nothing changed")
    store.update_loan(loan_id, patch)


@cli.command()
@click.argument("loan_id")
@click.pass_obj
def remove(store: LoanStore, loan_id: str) -> None:
    """Delete a loan."""
    store.remove_loan(loan_id)


@cli.command()
@click.argument("loan_id", required=False)
@click.pass_obj
def select(store: LoanStore, loan_id: Optional[str]) -> None:
    """Select a loan, or clear the selection when no id is given."""
    store.select(loan_id)


@cli.command()
@click.option("--show-closed/--hide-closed", "show_closed", default=None, help="Include paid-off loans")
@click.option("--sort-by", "sort_by", type=click.Choice(["payoff", "outstanding"]), help="Table ordering")
@click.pass_obj
def ui(store: LoanStore, show_closed: Optional[bool], sort_by: Optional[str]) -> None:
    """Change table preferences."""
    patch: Dict[str, Any] = {}
    if show_closed is not None:
        patch["show_closed"] = show_closed
    if sort_by is not None:
        patch["sort_by"] = sort_by
    if patch:
        store.set_ui(patch)
    current = store.ui
    click.echo(f"show_closed={current.show_closed} sort_by={current.sort_by}")


@cli.command()
@click.confirmation_option(prompt="Replace all loans with the sample set?")
@click.pass_obj
def reset(store: LoanStore) -> None:
    """Restore the sample loans and default preferences."""
    store.reset()


@cli.command()
@click.pass_obj
def undo(store: LoanStore) -> None:
    """Revert the last add, update, remove or reset."""
    if not store.undo():
        click.echo("Nothing to undo")


@cli.command()
@click.argument("output")
@click.pass_obj
def export(store: LoanStore, output: str) -> None:
    """Export the loan summary table to a CSV file."""
    path = Path(output)
    if path.suffix.lower() != ".csv":
        raise click.BadParameter("Unsupported output format; use .csv", param_hint="OUTPUT")
    export_to_csv(path, store.loans)
    click.echo(f"Summary exported to {path}")


@cli.command()
@click.pass_context
def shell(ctx: click.Context) -> None:
    """Run commands interactively against one store, keeping undo history."""
    store = ctx.obj
    click.echo("Type a command (e.g. 'list', 'update L1 --extra 5000', 'undo'); 'quit' to leave.")
    while True:
        try:
            line = click.prompt("debt-calc", prompt_suffix="> ", default="", show_default=False)
        except click.Abort:
            break
        try:
            tokens = shlex.split(line)
        except ValueError as exc:
            click.echo(f"Error: {exc}")
            continue
        if not tokens:
            continue
        if tokens[0] in ("quit", "exit"):
            break
        if tokens[0] == "shell":
            click.echo("Already in a shell")
            continue
        try:
            cli.main(args=tokens, prog_name="debt-calc", obj=store, standalone_mode=False)
        except click.ClickException as exc:
            exc.show()
        except click.Abort:
            click.echo("Aborted")


def main() -> None:
    cli(prog_name="debt-calc")


if __name__ == "__main__":
    main()

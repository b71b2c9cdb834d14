# ruff: noqa: I001
"""CLI for the ``expense_import`` package.

This module exposes callable command handlers (e.g., ``cmd_import_csv``) and a
Typer-based console interface. Environment variables (notably
``OPENAI_API_KEY`` and ``DATABASE_URL``) are loaded from a local ``.env`` using
``python-dotenv`` before delegating to command logic. Business logic lives in
``expense_import.workflows`` and related modules.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import Category, ReviewItem


# ---- Command handlers --------------------------------------------------------


def _terminal_selector() -> Callable[[ReviewItem, Sequence[Category]], str | None]:
    from .term_ui import describe_review_item, select_category

    def _select(item: ReviewItem, categories: Sequence[Category]) -> str | None:
        print(describe_review_item(item))
        return select_category([c.name for c in categories], default=item.category)

    return _select


def cmd_import_csv(
    csv_path: str,
    *,
    database_url: str | None = None,
    review: bool = True,
    batch_size: int | None = None,
    concurrency: int | None = None,
    model: str | None = None,
    selector: Callable[[ReviewItem, Sequence[Category]], str | None] | None = None,
) -> int:
    """Import one CSV file and print a summary. Returns a process exit code."""

    from .ingest.utils import read_csv_text
    from .store import SqlRecordStore
    from .workflows.import_flow import ImportState, import_expenses_from_csv

    try:
        raw_text = read_csv_text(csv_path)
    except FileNotFoundError:
        print(f"Error: File not found: {csv_path}", file=sys.stderr)
        return 1
    except PermissionError:
        print(f"Error: Permission denied: {csv_path}", file=sys.stderr)
        return 1

    if review and selector is None:
        selector = _terminal_selector()

    store = SqlRecordStore(database_url)
    summary = import_expenses_from_csv(
        raw_text,
        store,
        selector=selector if review else None,
        on_progress=print,
        batch_size=batch_size,
        concurrency=concurrency,
        model=model,
    )

    if summary.categorizer_available is False:
        print("Automatic categorization is unavailable; all uncategorized rows need review.")
    if summary.report is not None and summary.report.skipped:
        print(f"Skipped {len(summary.report.skipped)} invalid row(s).")

    if summary.state is ImportState.FAILED:
        print(f"Error: {summary.message}", file=sys.stderr)
        return 1
    if summary.state is ImportState.AWAITING_REVIEW:
        print(summary.message)
        print("Nothing was imported.")
        return 2
    print(summary.message)
    return 0 if summary.error is None else 1


def cmd_list_categories(*, database_url: str | None = None, archived: bool = False) -> int:
    from .store import SqlRecordStore

    store = SqlRecordStore(database_url)
    cats = store.get_archived_categories() if archived else store.get_active_categories()
    counts = store.category_expense_counts()
    for c in cats:
        print(f"{c.name}\t{counts.get(c.name, 0)}\t{c.description}")
    return 0


def cmd_list_expenses(*, database_url: str | None = None) -> int:
    from .store import SqlRecordStore

    for e in SqlRecordStore(database_url).list_records():
        print(f"{e.id}\t{e.date}\t{e.amount:.2f}\t{e.category}\t{e.description}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import expenses from CSV with OpenAI-assisted categorization. "
        "Loads OPENAI_API_KEY and DATABASE_URL from a local .env before running."
    ),
)
categories_app = typer.Typer(no_args_is_help=True, help="Manage expense categories.")
app.add_typer(categories_app, name="categories")


# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults). Typer inspects these when used as default values below.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a Date,Amount,Description (or Date,Category,Amount,Description) CSV",
    dir_okay=False,
    file_okay=True,
    exists=False,  # allow non-existent here; the handler reports a clear error
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    database_url: str | None = DATABASE_URL_OPTION,
    no_review: bool = typer.Option(
        False, "--no-review", help="Do not prompt; imports needing review are not committed."
    ),
    batch_size: int | None = typer.Option(
        None, min=1, help="Rows per categorization request (default 40)."
    ),
    concurrency: int | None = typer.Option(
        None, min=1, help="Categorization requests in flight (default 1)."
    ),
    model: str | None = typer.Option(None, help="OpenAI model (default gpt-4o)."),
) -> None:
    """Parse, categorize, review, and commit a CSV of expenses."""

    code = cmd_import_csv(
        str(csv_path),
        database_url=database_url,
        review=not no_review,
        batch_size=batch_size,
        concurrency=concurrency,
        model=model,
    )
    raise typer.Exit(code)


@categories_app.command("list")
def categories_list_cmd(
    *,
    database_url: str | None = DATABASE_URL_OPTION,
    archived: bool = typer.Option(False, "--archived", help="List archived categories."),
) -> None:
    raise typer.Exit(cmd_list_categories(database_url=database_url, archived=archived))


@categories_app.command("add")
def categories_add_cmd(
    name: str,
    *,
    description: str = typer.Option("", help="Guidance for humans and the categorizer."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    from .store import SqlRecordStore

    try:
        cat = SqlRecordStore(database_url).add_category(name, description)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from e
    print(f"Added category {cat.name!r}")


@categories_app.command("archive")
def categories_archive_cmd(
    name: str, *, database_url: str | None = DATABASE_URL_OPTION
) -> None:
    from .store import SqlRecordStore

    try:
        SqlRecordStore(database_url).archive_category(name)
    except LookupError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from e
    print(f"Archived category {name!r}")


@categories_app.command("restore")
def categories_restore_cmd(
    name: str, *, database_url: str | None = DATABASE_URL_OPTION
) -> None:
    from .store import SqlRecordStore

    try:
        SqlRecordStore(database_url).restore_category(name)
    except LookupError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from e
    print(f"Restored category {name!r}")


@app.command("seed-categories")
def seed_categories_cmd(
    *, database_url: str | None = DATABASE_URL_OPTION
) -> None:
    """Insert any missing default categories."""

    from .store import SqlRecordStore

    added = SqlRecordStore(database_url).seed_default_categories()
    print(f"Seeded {added} default categor{'y' if added == 1 else 'ies'}")


@app.command("list-expenses")
def list_expenses_cmd(
    *, database_url: str | None = DATABASE_URL_OPTION
) -> None:
    raise typer.Exit(cmd_list_expenses(database_url=database_url))


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()

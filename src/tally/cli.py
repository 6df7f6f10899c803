import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from tally.classifier import classify_line
from tally.db import get_connection, init_db
from tally.errors import (
    Cancelled,
    InvalidRulePattern,
    PersistenceFailure,
    QuotaExceeded,
    RuleNotFound,
    RuleValidationError,
    TallyError,
    UnparseableDocument,
    UnsupportedBank,
)
from tally.models import IdFormat, LearnRequest
from tally.parser import split_lines
from tally.plugins import load_plugins, seed_plugin_rules
from tally.registry import registry
from tally.serialize import result_to_dict, rule_to_dict
from tally.service import StatementService
from tally.settings import DEFAULTS, get_data_dir, get_db_path, load_settings, save_settings
from tally.store import migrate_id_format

app = typer.Typer(help="Tally: bank statement extraction and categorization.", invoke_without_command=True)

rules_app = typer.Typer(help="Manage your categorization rules.")
app.add_typer(rules_app, name="rules")

ids_app = typer.Typer(help="Rule identifier maintenance.")
app.add_typer(ids_app, name="ids")

_plugin_hooks = load_plugins()

console = Console()
err_console = Console(stderr=True)

EXIT_CODES = [
    (RuleValidationError, 1),
    (InvalidRulePattern, 1),
    (RuleNotFound, 1),
    (UnsupportedBank, 2),
    (UnparseableDocument, 2),
    (QuotaExceeded, 3),
    (PersistenceFailure, 4),
    (Cancelled, 1),
]


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")):
    """Tally: bank statement extraction and categorization."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _fail(exc: TallyError):
    code = next((c for kind, c in EXIT_CODES if isinstance(exc, kind)), 1)
    err_console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code)


def _service() -> StatementService:
    settings = load_settings()
    return StatementService(get_db_path(settings), settings)


@app.command()
def init(
    data_dir: str = typer.Option(None, "--data-dir", help="Path for Tally data (default: ~/.local/share/tally)"),
):
    """Choose a data directory, create the database and seed bank rules."""
    settings = load_settings()

    if data_dir:
        settings["data_dir"] = str(Path(data_dir).expanduser().resolve())
    elif settings == DEFAULTS:
        chosen = typer.prompt("Data directory", default=settings["data_dir"])
        settings["data_dir"] = str(Path(chosen).expanduser().resolve())

    save_settings(settings)

    resolved = get_data_dir()
    resolved.mkdir(parents=True, exist_ok=True)

    conn = get_connection(get_db_path(settings))
    init_db(conn, extra_rules=settings.get("bank_rules"))
    seed_plugin_rules(conn, _plugin_hooks)
    conn.close()

    typer.echo(f"Initialized tally at {resolved}")


@app.command()
def banks():
    """List the bank codes that have a registered parser."""
    table = Table(title="Banks")
    table.add_column("Code", style="dim")
    table.add_column("Name")
    table.add_column("Version")
    for info in sorted(registry.list_all(), key=lambda i: i.key):
        table.add_row(info.key, info.name, info.version)
    console.print(table)


@app.command()
def parse(
    file: Path = typer.Argument(
        exists=True, dir_okay=False, help="Text extracted from a PDF statement (pages separated by form feeds)"
    ),
    bank: str = typer.Option(help="Bank code, e.g. galicia"),
    user: str = typer.Option(help="User identity"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Parse a statement, categorize its transactions and count it against the monthly quota."""
    text = file.read_text(encoding="utf-8")
    try:
        with _service() as service:
            result = service.parse(text, bank, user)
    except TallyError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(result_to_dict(result), indent=2, ensure_ascii=False))
        return

    for account in result.statement.accounts:
        table = Table(title=f"{result.bank} · {account.account}")
        table.add_column("Date")
        table.add_column("Description")
        table.add_column("Amount", justify="right")
        table.add_column("Category")
        table.add_column("Source", style="dim")
        for t in account.transactions:
            color = "red" if t.amount < 0 else "green"
            category = " / ".join(c for c in (t.category, t.subcategory) if c) or "[yellow]uncategorized[/yellow]"
            table.add_row(
                t.date.isoformat(), t.description, f"[{color}]{t.amount:,.2f}[/{color}]",
                category, t.category_source.value,
            )
        console.print(table)
        if account.reconciled is True:
            console.print("[green]Balances reconcile.[/green]")
        elif account.reconciled is False:
            console.print("[red]Balances do not reconcile.[/red]")

    for warning in result.warnings:
        console.print(f"[yellow]{warning}[/yellow]")


@app.command()
def usage(user: str = typer.Option(help="User identity")):
    """Show this month's parse count and remaining quota."""
    try:
        with _service() as service:
            data = service.usage(user)
    except TallyError as exc:
        _fail(exc)

    if data["limit"] == 0:
        typer.echo(f"{data['count']} parses this month (unlimited)")
    else:
        typer.echo(f"{data['count']} parses this month, {max(data['remaining'], 0)} remaining of {data['limit']}")


@app.command()
def lines(
    file: Path = typer.Argument(exists=True, dir_okay=False, help="Text extracted from a PDF statement"),
    bank: str = typer.Option(help="Bank code, e.g. galicia"),
):
    """Show how each line of a statement is classified. Nothing is recorded."""
    table = Table(title=f"Lines · {bank}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Kind")
    table.add_column("Text")
    try:
        for line_no, line in enumerate(split_lines(file.read_text(encoding="utf-8")), 1):
            if not line.strip():
                continue
            c = classify_line(bank, line)
            table.add_row(str(line_no), c.kind.value, c.text)
    except TallyError as exc:
        _fail(exc)
    console.print(table)


# --- Rules ---


@rules_app.command("learn")
def rules_learn(
    pattern: str = typer.Argument(help="Pattern to match against transaction descriptions"),
    bank: str = typer.Option(help="Bank code"),
    user: str = typer.Option(help="User identity"),
    category: str = typer.Option(help="Category to assign"),
    subcategory: str = typer.Option(None, help="Optional subcategory"),
    pattern_type: str = typer.Option("contains", "--type", help="contains, starts_with, ends_with, equals, regex"),
    priority: int = typer.Option(None, help="Lower wins (default 100)"),
    as_json: bool = typer.Option(False, "--json", help="Print the rule as JSON"),
):
    """Create or update one of your rules."""
    request = LearnRequest(
        user_id=user, bank=bank, pattern=pattern, category=category,
        pattern_type=pattern_type, subcategory=subcategory, priority=priority,
    )
    try:
        with _service() as service:
            rule = service.learn(request)
            id_format = service.id_format
    except TallyError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(rule_to_dict(rule, id_format), indent=2, ensure_ascii=False))
        return
    typer.echo(f"Saved rule {rule_to_dict(rule, id_format)['id']}: '{rule.pattern}' → {rule.category}")


@rules_app.command("list")
def rules_list(
    bank: str = typer.Option(help="Bank code"),
    user: str = typer.Option(help="User identity"),
    show_all: bool = typer.Option(False, "--all", help="Include deactivated rules"),
    as_json: bool = typer.Option(False, "--json", help="Print the rules as JSON"),
):
    """List your rules for a bank."""
    try:
        with _service() as service:
            rules = service.list_rules(user, bank, only_active=not show_all)
            id_format = service.id_format
    except TallyError as exc:
        _fail(exc)

    rows = [rule_to_dict(r, id_format) for r in rules]
    if as_json:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return

    table = Table(title=f"Rules · {user} · {bank}")
    table.add_column("ID", style="dim")
    table.add_column("Pattern")
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Priority", justify="right")
    table.add_column("Active")
    table.add_column("Hits", justify="right")
    for r in rows:
        category = " / ".join(c for c in (r["category"], r["subcategory"]) if c)
        table.add_row(
            r["id"], r["pattern"], r["patternType"], category,
            str(r["priority"]), "yes" if r["active"] else "no", str(r["hitCount"]),
        )
    console.print(table)


@rules_app.command("deactivate")
def rules_deactivate(
    rule_id: str = typer.Argument(help="Rule id (either id format is accepted)"),
    bank: str = typer.Option(help="Bank code"),
    user: str = typer.Option(help="User identity"),
):
    """Deactivate one of your rules."""
    try:
        with _service() as service:
            rule = service.deactivate_rule(user, bank, rule_id)
    except TallyError as exc:
        _fail(exc)
    typer.echo(f"Deactivated rule: '{rule.pattern}'")


@rules_app.command("bank")
def rules_bank(
    pattern: str = typer.Argument(help="Pattern of the bank-wide rule"),
    bank: str = typer.Option(help="Bank code"),
    enable: bool = typer.Option(..., "--enable/--disable", help="Turn the rule on or off"),
):
    """Enable or disable a bank-wide rule for every user."""
    try:
        with _service() as service:
            rule = service.set_bank_rule(bank, pattern, enable)
    except TallyError as exc:
        _fail(exc)
    state = "Enabled" if rule.active else "Disabled"
    typer.echo(f"{state} bank rule: '{rule.pattern}' → {rule.category}")


# --- Ids ---


@ids_app.command("migrate")
def ids_migrate(
    to: IdFormat = typer.Option(..., "--to", help="Target id encoding"),
):
    """Rewrite stored rule ids in another encoding and make it the default."""
    settings = load_settings()
    try:
        conn = get_connection(get_db_path(settings))
        try:
            changed = migrate_id_format(conn, to)
        finally:
            conn.close()
    except TallyError as exc:
        _fail(exc)

    settings["id_format"] = to.value
    save_settings(settings)
    typer.echo(f"Migrated {changed} rule ids to {to.value}")


if __name__ == "__main__":
    app()

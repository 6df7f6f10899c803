import re
from types import SimpleNamespace

import typer

from tally.banks import galicia
from tally.models import LineGrammar, ParserInfo
from tally.parser import parse_text
from tally.plugins import PluginHooks, load_plugins, register_hooks, seed_plugin_rules
from tally.registry import ParserRegistry


def _macro_info():
    grammar = LineGrammar(
        header=re.compile(r"^Cuenta\s+(?P<account>\d+)$"),
        row=galicia.GRAMMAR.row,
        decode_row=galicia.decode_row,
    )
    return ParserInfo(key="macro", name="Banco Macro", grammar=grammar)


def test_add_parser():
    hooks = PluginHooks()
    hooks.add_parser(_macro_info())
    assert len(hooks.parsers) == 1


def test_add_bank_rules_accumulates():
    hooks = PluginHooks()
    hooks.add_bank_rules("macro", [{"pattern": "CUOTA", "category": "Prestamos"}])
    hooks.add_bank_rules("macro", [{"pattern": "SEGURO", "category": "Seguros"}])
    assert len(hooks.bank_rules["macro"]) == 2


def test_add_command():
    hooks = PluginHooks()
    parent = typer.Typer()

    def new_cmd():
        """A plugin command."""

    hooks.add_command(parent, new_cmd)
    assert len(hooks.commands) == 1


def test_register_hooks_adds_parsers_to_registry():
    reg = ParserRegistry()
    hooks = PluginHooks()
    hooks.add_parser(_macro_info())
    register_hooks(hooks, target=reg)

    statement, _ = parse_text(reg.get("macro"), "Cuenta 42\n02/01/24 CUOTA -10,00 90,00\n")
    assert statement.accounts[0].account == "42"


def test_load_plugins_from_entry_points(monkeypatch):
    def register(hooks, **kwargs):
        hooks.add_parser(_macro_info())
        hooks.add_bank_rules("macro", [("CUOTA", "contains", "Prestamos", None, 5)])

    entry_point = SimpleNamespace(name="macro", load=lambda: SimpleNamespace(register=register))
    monkeypatch.setattr(
        "tally.plugins.importlib.metadata.entry_points",
        lambda group: [entry_point] if group == "tally.banks" else [],
    )
    reg = ParserRegistry()
    hooks = load_plugins(target=reg)
    assert reg.get("macro").key == "macro"
    assert "macro" in hooks.bank_rules


def test_seed_plugin_rules_idempotent(db):
    hooks = PluginHooks()
    hooks.add_bank_rules("macro", [{"pattern": "CUOTA", "category": "Prestamos", "priority": 5}])
    assert seed_plugin_rules(db, hooks) == 1
    assert seed_plugin_rules(db, hooks) == 0

    row = db.execute("SELECT * FROM bank_rules WHERE bank = 'macro'").fetchone()
    assert row["category"] == "Prestamos"
    assert row["built_in"] == 1

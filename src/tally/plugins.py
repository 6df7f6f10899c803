import importlib.metadata
import logging
import sqlite3

import typer

from tally.db import seed_bank_rules
from tally.models import ParserInfo
from tally.registry import ParserRegistry, registry

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "tally.banks"


class PluginHooks:
    def __init__(self):
        self.parsers: list[ParserInfo] = []
        self.bank_rules: dict[str, list] = {}
        self.commands: list[tuple[typer.Typer, callable]] = []

    def add_parser(self, info: ParserInfo) -> None:
        self.parsers.append(info)

    def add_bank_rules(self, bank: str, items: list) -> None:
        self.bank_rules.setdefault(bank, []).extend(items)

    def add_command(self, parent: typer.Typer, command: callable) -> None:
        self.commands.append((parent, command))


def load_plugins(target: ParserRegistry = registry) -> PluginHooks:
    """Discover installed bank plugins and collect their hooks."""
    hooks = PluginHooks()

    for ep in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
        plugin_module = ep.load()
        if hasattr(plugin_module, "register"):
            plugin_module.register(hooks)
            logger.debug("Loaded bank plugin %s", ep.name)

    register_hooks(hooks, target=target)
    return hooks


def register_hooks(hooks: PluginHooks, target: ParserRegistry = registry) -> None:
    for info in hooks.parsers:
        target.register(info)

    for parent, command in hooks.commands:
        parent.command()(command)


def seed_plugin_rules(conn: sqlite3.Connection, hooks: PluginHooks) -> int:
    return seed_bank_rules(conn, hooks.bank_rules)

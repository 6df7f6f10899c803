"""Bundled bank statement parsers, registered under their bank codes."""

from tally.banks import bbva, galicia, santander, supervielle
from tally.models import ParserInfo
from tally.registry import ParserRegistry, registry

BUNDLED = [
    ParserInfo(key="galicia", name="Banco Galicia", grammar=galicia.GRAMMAR),
    ParserInfo(key="supervielle", name="Banco Supervielle", grammar=supervielle.GRAMMAR),
    ParserInfo(key="santander", name="Banco Santander", grammar=santander.GRAMMAR),
    ParserInfo(key="bbva", name="BBVA", grammar=bbva.GRAMMAR),
]


def register(target: ParserRegistry = registry) -> None:
    for info in BUNDLED:
        target.register(info)


register()

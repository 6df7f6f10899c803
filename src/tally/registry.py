from tally.errors import UnsupportedBank
from tally.models import ParserInfo


class ParserRegistry:
    def __init__(self):
        self._parsers: dict[str, ParserInfo] = {}

    def register(self, info: ParserInfo) -> None:
        self._parsers[info.key] = info

    def get(self, bank: str) -> ParserInfo:
        """Look up a parser by bank code (case-sensitive)."""
        info = self._parsers.get(bank)
        if info is None:
            raise UnsupportedBank(bank)
        return info

    def list_all(self) -> list[ParserInfo]:
        return list(self._parsers.values())


registry = ParserRegistry()

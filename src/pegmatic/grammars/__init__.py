import re
from functools import lru_cache
from importlib.resources import files
from typing import Final

from ..grammar import Grammar
from ..reader import parse_grammar

BUNDLED: Final[tuple[str, ...]] = ("arithmetic", "json", "peg")


@lru_cache(maxsize=None)
def read_grammar(name: str) -> str:
    if not re.compile(r"^\w+$").fullmatch(name):
        raise ValueError(f"Invalid grammar name: {name!r}")
    path = files(__name__).joinpath(f"{name}.peg")
    with path.open(encoding="utf-8") as f:
        return f.read()


@lru_cache(maxsize=None)
def load_grammar(name: str) -> Grammar:
    """Parses (and expands) one of the bundled grammars; grammars are immutable, so they are shared."""
    return parse_grammar(read_grammar(name))

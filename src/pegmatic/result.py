import sys
from collections.abc import Iterator
from typing import NamedTuple, TextIO, final

from .diagnostics import Diagnostic
from .exc import NoMatch

type ParseOutcome = Success | Failure


@final
class MatchResult(NamedTuple):
    rule: str
    start: int
    end: int
    text: str
    children: tuple["MatchResult", ...] = ()

    @property
    def success(self) -> bool:
        return True

    @property
    def span(self) -> tuple[int, int]:
        return self.start, self.end

    def to_json(self):
        if self.children:
            return {self.rule: [child.to_json() for child in self.children]}
        return {self.rule: self.text}

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            for child in self.children:
                if child.rule == item:
                    return True
        return False

    def walk(self) -> Iterator["MatchResult"]:
        """This node and all its descendants, depth first, in input order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find_all(self, rule: str) -> Iterator["MatchResult"]:
        return (node for node in self.walk() if node.rule == rule)

    def render(self, fp: TextIO = sys.stdout, indent: int = 0) -> None:
        if self.children:
            print(indent * "  ", f"{self.rule}:", sep="", file=fp)
            for child in self.children:
                child.render(fp, indent + 1)
        else:
            print(indent * "  ", f"{self.rule}: {self.text!r}", sep="", file=fp)


@final
class Success(NamedTuple):
    tree: MatchResult

    @property
    def success(self) -> bool:
        return True

    @property
    def start(self) -> int:
        return self.tree.start

    @property
    def end(self) -> int:
        return self.tree.end

    def unwrap(self) -> MatchResult:
        return self.tree


@final
class Failure(NamedTuple):
    diagnostic: Diagnostic

    @property
    def success(self) -> bool:
        return False

    @property
    def end(self) -> None:
        return None

    def unwrap(self) -> MatchResult:
        raise NoMatch(self.diagnostic)

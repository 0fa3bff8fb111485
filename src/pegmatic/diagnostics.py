import sys
from typing import TYPE_CHECKING, NamedTuple, TextIO, final

from colorama import Fore, Style

from .util import line_at, line_col

if TYPE_CHECKING:
    from .rules import Rule


def _render_found(found: str | None) -> str:
    if found is None:
        return "end of input"
    if 0x20 < ord(found) < 0x7F:
        return repr(found)
    return f"#x{ord(found):02x}"


@final
class Diagnostic(NamedTuple):
    position: int
    expected: frozenset[str]
    rules: frozenset[str]
    found: str | None  # None at end of input
    line: int
    column: int

    @property
    def message(self) -> str:
        expected = ", ".join(sorted(self.expected)) or "nothing"
        msg = (
            f"expected {expected} but found {_render_found(self.found)}"
            f" at line {self.line}, column {self.column} (pos={self.position})"
        )
        if self.rules:
            msg = f"{msg}; while matching {', '.join(sorted(self.rules))}"
        return msg

    def __str__(self) -> str:
        return self.message

    def render(self, text: str, fp: TextIO = sys.stdout) -> None:
        gutter = f"{self.line:>5} | "
        print(Style.BRIGHT, Fore.RED, "error: ", Style.RESET_ALL, self.message, sep="", file=fp)
        print(Fore.LIGHTBLACK_EX, gutter, Style.RESET_ALL, line_at(text, self.position), sep="", file=fp)
        print(" " * (len(gutter) + self.column - 1), Style.BRIGHT, Fore.RED, "^", Style.RESET_ALL, sep="", file=fp)


@final
class Diagnostics:
    """
    Furthest-failure tracker.

    Only the failures at the furthest position reached so far are kept; an
    earlier failure is dropped as soon as a later one is seen.  While `quiet` is
    non-zero (inside negative lookahead) failures are not recorded at all.
    """

    __slots__ = ("_text", "_position", "_expected", "_rules", "quiet")

    def __init__(self, text: str) -> None:
        self._text = text
        self._position: int = -1
        self._expected: set["Rule | str"] = set()
        self._rules: set[str] = set()
        self.quiet: int = 0

    @property
    def position(self) -> int | None:
        return None if self._position < 0 else self._position

    def fail(self, pos: int, expected: "Rule | str", rule: str | None) -> None:
        if self.quiet or pos < self._position:
            return
        if pos > self._position:
            self._position = pos
            self._expected.clear()
            self._rules.clear()
        self._expected.add(expected)
        if rule is not None:
            self._rules.add(rule)

    def report(self, pos: int, expected: str) -> Diagnostic:
        """The furthest failure, or a failure expecting `expected` at `pos` if none was recorded."""
        if self._position < 0:
            return self.at(pos, frozenset([expected]), frozenset())
        return self.at(
            self._position,
            frozenset(str(e) for e in self._expected),
            frozenset(self._rules),
        )

    def at(self, pos: int, expected: frozenset[str], rules: frozenset[str]) -> Diagnostic:
        line, column = line_col(self._text, pos)
        found = self._text[pos] if pos < len(self._text) else None
        return Diagnostic(pos, expected, rules, found, line, column)

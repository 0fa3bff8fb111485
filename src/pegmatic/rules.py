import re
from collections.abc import Iterable, Iterator, Set
from typing import NamedTuple, final

from frozenintset import FrozenIntSet

from .defs import Associativity

type Rule = (
    Literal
    | Pattern
    | Chars
    | RuleRef
    | Sequence
    | Choice
    | Optional
    | Repeat
    | NotPredicate
    | AndPredicate
    | Silent
    | Atomic
    | PrecedenceGroup
)

# binding strength, used to decide where rendering needs parentheses
_CHOICE = 1
_SEQUENCE = 2
_PREFIX = 3
_POSTFIX = 4
_ATOM = 5

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t", "\0": "\\0"}


def _escape(text: str, quote: str) -> str:
    out: list[str] = []
    for c in text:
        if c in _ESCAPES:
            out.append(_ESCAPES[c])
        elif c == quote:
            out.append("\\" + c)
        elif ord(c) < 0x20 or ord(c) == 0x7F:
            out.append(f"\\x{ord(c):02x}")
        else:
            out.append(c)
    return "".join(out)


def _char(c: int) -> str:
    return "'" + _escape(chr(c), "'") + "'"


@final
class Literal(NamedTuple):
    text: str

    def __str__(self) -> str:
        return '"' + _escape(self.text, '"') + '"'


@final
class Pattern(NamedTuple):
    regex: re.Pattern[str]

    @staticmethod
    def of(pattern: str) -> "Pattern":
        return Pattern(re.compile(pattern))

    def __str__(self) -> str:
        return "/" + self.regex.pattern.replace("/", "\\/") + "/"


@final
class Chars(NamedTuple):
    allowed: FrozenIntSet

    @staticmethod
    def between(lo: str, hi: str) -> "Chars":
        return Chars(FrozenIntSet(range(ord(lo), ord(hi) + 1)))

    @staticmethod
    def of(*it: Iterable["Chars"]) -> "Chars":
        return Chars(FrozenIntSet.union_all(c.allowed for cs in it for c in cs))

    def __str__(self) -> str:
        parts = [f"{_char(rng.start)}..{_char(rng.stop - 1)}" for rng in self.allowed.ranges]
        if len(parts) == 1:
            return parts[0]
        return "(" + " | ".join(parts) + ")"


@final
class RuleRef(NamedTuple):
    name: str

    def __str__(self) -> str:
        return self.name


@final
class Sequence(NamedTuple):
    left: Rule
    right: Rule

    @staticmethod
    def of(*it: Iterable[Rule]) -> Rule:
        rules = [r for rs in it for r in rs]
        seq = rules[0]
        for r in rules[1:]:
            seq = Sequence(seq, r)
        return seq

    def __str__(self) -> str:
        return f"{_render(self.left, _SEQUENCE)} ~ {_render(self.right, _SEQUENCE + 1)}"


@final
class Choice(NamedTuple):
    left: Rule
    right: Rule

    @staticmethod
    def of(*it: Iterable[Rule]) -> Rule:
        rules = [r for rs in it for r in rs]
        choice = rules[0]
        for r in rules[1:]:
            choice = Choice(choice, r)
        return choice

    def __str__(self) -> str:
        return f"{_render(self.left, _CHOICE)} | {_render(self.right, _CHOICE + 1)}"


@final
class Optional(NamedTuple):
    inner: Rule

    def __str__(self) -> str:
        return f"{_render(self.inner, _POSTFIX)}?"


@final
class Repeat(NamedTuple):
    inner: Rule
    min: int = 0
    max: int | None = None  # None = unbounded

    def __str__(self) -> str:
        match self.min, self.max:
            case 0, None:
                suffix = "*"
            case 1, None:
                suffix = "+"
            case n, None:
                suffix = f"{{{n},}}"
            case 0, m:
                suffix = f"{{,{m}}}"
            case n, m if n == m:
                suffix = f"{{{n}}}"
            case n, m:
                suffix = f"{{{n},{m}}}"
        return f"{_render(self.inner, _POSTFIX)}{suffix}"


@final
class NotPredicate(NamedTuple):
    inner: Rule

    def __str__(self) -> str:
        return f"!{_render(self.inner, _PREFIX)}"


@final
class AndPredicate(NamedTuple):
    inner: Rule

    def __str__(self) -> str:
        return f"&{_render(self.inner, _PREFIX)}"


@final
class Silent(NamedTuple):
    inner: Rule

    def __str__(self) -> str:
        return f"_{_render(self.inner, _PREFIX)}"


@final
class Atomic(NamedTuple):
    inner: Rule

    def __str__(self) -> str:
        return f"@{_render(self.inner, _PREFIX)}"


@final
class PrecedenceLevel(NamedTuple):
    priority: int
    associativity: Associativity
    rule: Rule

    def __str__(self) -> str:
        return f"{self.priority} {self.associativity.value} {self.rule}"


@final
class PrecedenceGroup(NamedTuple):
    levels: tuple[PrecedenceLevel, ...]
    operand: Rule

    def __str__(self) -> str:
        levels = "".join(f"\n    {level}" for level in self.levels)
        return f"precedence!{{\n    {self.operand}{levels}\n}}"


def _strength(rule: Rule) -> int:
    match rule:
        case Choice():
            return _CHOICE
        case Sequence():
            return _SEQUENCE
        case NotPredicate() | AndPredicate() | Silent() | Atomic():
            return _PREFIX
        case Optional() | Repeat():
            return _POSTFIX
    return _ATOM


def _render(rule: Rule, at_least: int) -> str:
    if _strength(rule) < at_least:
        return f"({rule})"
    return str(rule)


def render_rule(name: str, rule: Rule) -> str:
    match rule:
        case Silent(inner):
            return f"{name} = _{{ {inner} }}"
        case Atomic(inner):
            return f"{name} = @{{ {inner} }}"
        case PrecedenceGroup():
            return f"{name} = {rule}"
    return f"{name} = {{ {rule} }}"


def refs(rule: Rule) -> Iterator[str]:
    match rule:
        case RuleRef(name):
            yield name
        case Sequence(left, right) | Choice(left, right):
            yield from refs(left)
            yield from refs(right)
        case Optional(e) | Repeat(e) | NotPredicate(e) | AndPredicate(e) | Silent(e) | Atomic(e):
            yield from refs(e)
        case PrecedenceGroup(levels, operand):
            yield from refs(operand)
            for level in levels:
                yield from refs(level.rule)


def can_be_empty(rule: Rule, nullable: Set[str]) -> bool:
    match rule:
        case Literal(text):
            return not text
        case Pattern(regex):
            # approximation: a pattern that accepts the empty string at all
            return regex.match("") is not None
        case Chars():
            return False
        case RuleRef(name):
            return name in nullable
        case Sequence(left, right):
            return can_be_empty(left, nullable) and can_be_empty(right, nullable)
        case Choice(left, right):
            return can_be_empty(left, nullable) or can_be_empty(right, nullable)
        case Optional() | NotPredicate() | AndPredicate():
            return True
        case Repeat(inner, min_):
            return min_ == 0 or can_be_empty(inner, nullable)
        case Silent(inner) | Atomic(inner):
            return can_be_empty(inner, nullable)
        case PrecedenceGroup(operand=operand):
            return can_be_empty(operand, nullable)
    raise RuntimeError("unreachable code")


def leftmost_refs(rule: Rule, nullable: Set[str]) -> Iterator[str]:
    """Names of rules that may be applied at the position `rule` starts at."""
    match rule:
        case RuleRef(name):
            yield name
        case Sequence(left, right):
            yield from leftmost_refs(left, nullable)
            if can_be_empty(left, nullable):
                yield from leftmost_refs(right, nullable)
        case Choice(left, right):
            yield from leftmost_refs(left, nullable)
            yield from leftmost_refs(right, nullable)
        case Optional(e) | Repeat(e) | NotPredicate(e) | AndPredicate(e) | Silent(e) | Atomic(e):
            yield from leftmost_refs(e, nullable)
        case PrecedenceGroup(operand=operand):
            yield from leftmost_refs(operand, nullable)

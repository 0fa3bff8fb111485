import logging
import re
from collections.abc import Iterator
from typing import Final, final

from .defs import Associativity
from .exc import DuplicateRuleError, GrammarSyntaxError, UnknownRuleError
from .grammar import Grammar
from .precedence import expand_precedence
from .rules import (
    AndPredicate,
    Atomic,
    Chars,
    Choice,
    Literal,
    NotPredicate,
    Optional,
    Pattern,
    PrecedenceGroup,
    PrecedenceLevel,
    Repeat,
    Rule,
    RuleRef,
    Sequence,
    Silent,
)
from .tokenize import Token, TokenKind, clean, tokenize

LOGGER = logging.getLogger(__name__)

BUILTINS: Final[dict[str, Rule]] = {
    "ANY": Pattern.of(r"(?s:.)"),
    "SOI": Pattern.of(r"\A"),
    "EOI": Pattern.of(r"\Z"),
    "NEWLINE": Pattern.of(r"\r\n|\n|\r"),
    "ASCII_DIGIT": Chars.between("0", "9"),
    "ASCII_ALPHA": Chars.of([Chars.between("a", "z"), Chars.between("A", "Z")]),
    "ASCII_ALPHANUMERIC": Chars.of(
        [Chars.between("a", "z"), Chars.between("A", "Z"), Chars.between("0", "9")],
    ),
}

_ESCAPE: Final[re.Pattern[str]] = re.compile(
    r"\\(?:u\{(?P<u>[0-9a-fA-F]+)\}|x(?P<x>[0-9a-fA-F]{2})|(?P<c>.))",
    re.DOTALL,
)

_SIMPLE_ESCAPES: Final[dict[str, str]] = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "0": "\0",
    "\\": "\\",
    '"': '"',
    "'": "'",
}


@final
class _GrammarParser:
    __slots__ = ("_it", "_current_token", "_source", "_refs")

    def __init__(self, source: str) -> None:
        self._source: Final[str] = source
        self._it: Iterator[Token] = clean(tokenize(source), source)
        self._current_token: Token | None = next(self._it, None)
        self._refs: list[tuple[str, int]] = list()

    def _pos(self) -> int:
        if self._current_token is None:
            return len(self._source)
        return self._current_token.pos

    def _describe(self) -> str:
        if self._current_token is None:
            return "end of grammar"
        return repr(self._current_token.value)

    def _error(self, message: str, pos: int | None = None) -> GrammarSyntaxError:
        return GrammarSyntaxError(self._pos() if pos is None else pos, message, self._source)

    def _accept(self, *kinds: TokenKind) -> Token | None:
        if self._current_token is not None and self._current_token.kind in kinds:
            token = self._current_token
            self._current_token = next(self._it, None)
            return token
        return None

    def _expect(self, kind: TokenKind, what: str) -> Token:
        if (token := self._accept(kind)) is not None:
            return token
        raise self._error(f"expected {what}, got {self._describe()}")

    def _unescape(self, text: str, pos: int) -> str:
        def replace(m: re.Match[str]) -> str:
            if (u := m.group("u")) is not None:
                try:
                    return chr(int(u, 16))
                except (ValueError, OverflowError) as err:
                    raise self._error(f"invalid code point \\u{{{u}}}", pos) from err
            if (x := m.group("x")) is not None:
                return chr(int(x, 16))
            if (c := m.group("c")) in _SIMPLE_ESCAPES:
                return _SIMPLE_ESCAPES[c]
            raise self._error(f"invalid escape sequence \\{c}", pos)

        return _ESCAPE.sub(replace, text)

    def _parse_rule(self) -> tuple[str, Rule, int] | None:
        if (token := self._accept(TokenKind.IDENT)) is None:
            if self._current_token is not None:
                raise self._error(f"expected rule definition, got {self._describe()}")
            return None
        name = token.value
        if name in BUILTINS:
            raise self._error(f"{name} is a builtin and can not be redefined", token.pos)
        self._expect(TokenKind.EQUALS, "'='")
        if self._accept(TokenKind.LBRACE) is not None:
            rule = self._parse_choice()
        elif self._accept(TokenKind.SILENT_BODY) is not None:
            rule = Silent(self._parse_choice())
        elif self._accept(TokenKind.ATOMIC_BODY) is not None:
            rule = Atomic(self._parse_choice())
        elif self._accept(TokenKind.PRECEDENCE) is not None:
            rule = self._parse_precedence()
        else:
            raise self._error(f"expected '{{', '_{{', '@{{' or 'precedence!{{', got {self._describe()}")
        self._expect(TokenKind.RBRACE, "'}'")
        return name, rule, token.pos

    def _parse_precedence(self) -> PrecedenceGroup:
        start = self._pos()
        operand = self._parse_choice()
        levels: list[PrecedenceLevel] = list()
        while (token := self._accept(TokenKind.INT)) is not None:
            priority = int(token.value)
            if any(level.priority == priority for level in levels):
                raise self._error(f"duplicate precedence level {priority}", token.pos)
            tag = self._expect(TokenKind.IDENT, "associativity (left, right or none)")
            try:
                associativity = Associativity(tag.value)
            except ValueError as err:
                raise self._error(f"unknown associativity {tag.value!r}", tag.pos) from err
            levels.append(PrecedenceLevel(priority, associativity, self._parse_choice()))
        if not levels:
            raise self._error("precedence block needs at least one level", start)
        return PrecedenceGroup(tuple(sorted(levels, key=lambda level: level.priority)), operand)

    def _parse_choice(self) -> Rule:
        alternatives = [self._parse_sequence()]
        while self._accept(TokenKind.PIPE):
            alternatives.append(self._parse_sequence())
        match alternatives:
            case [rule]:
                return rule
            case rules if all(isinstance(r, Chars) for r in rules):
                # ordered choice between single characters is a character set
                return Chars.of(rules)  # type: ignore[arg-type]
            case rules:
                return Choice.of(rules)

    def _parse_sequence(self) -> Rule:
        steps = [self._parse_prefixed()]
        while self._accept(TokenKind.TILDE):
            steps.append(self._parse_prefixed())
        return Sequence.of(steps)

    def _parse_prefixed(self) -> Rule:
        if self._accept(TokenKind.BANG) is not None:
            return NotPredicate(self._parse_prefixed())
        if self._accept(TokenKind.AMP) is not None:
            return AndPredicate(self._parse_prefixed())
        if self._accept(TokenKind.UNDERSCORE) is not None:
            return Silent(self._parse_prefixed())
        if self._accept(TokenKind.AT) is not None:
            return Atomic(self._parse_prefixed())
        return self._parse_postfixed()

    def _parse_postfixed(self) -> Rule:
        rule = self._parse_atom()
        while True:
            if self._accept(TokenKind.QUESTION) is not None:
                rule = Optional(rule)
            elif self._accept(TokenKind.STAR) is not None:
                rule = Repeat(rule, 0, None)
            elif self._accept(TokenKind.PLUS) is not None:
                rule = Repeat(rule, 1, None)
            elif (token := self._accept(TokenKind.BOUNDS)) is not None:
                rule = self._parse_bounds(rule, token)
            else:
                return rule

    def _parse_bounds(self, rule: Rule, token: Token) -> Repeat:
        min_: int
        max_: int | None
        if "exact" in token.groups:
            min_ = max_ = int(token.groups["exact"])
        else:
            min_ = int(token.groups.get("min") or 0)
            max_ = int(token.groups["max"]) if token.groups.get("max") else None
        if max_ is not None and max_ < min_:
            raise self._error(f"invalid repetition bounds {token.value}", token.pos)
        return Repeat(rule, min_, max_)

    def _parse_char(self, text: str, pos: int) -> str:
        c = self._unescape(text, pos)
        if len(c) != 1:
            raise self._error(f"character range bound must be a single character, got {c!r}", pos)
        return c

    def _parse_atom(self) -> Rule:
        if (token := self._accept(TokenKind.IDENT)) is not None:
            if token.value in BUILTINS:
                return BUILTINS[token.value]
            self._refs.append((token.value, token.pos))
            return RuleRef(token.value)
        elif (token := self._accept(TokenKind.STRING)) is not None:
            return Literal(self._unescape(token.groups["dq"], token.pos))
        elif (token := self._accept(TokenKind.QSTRING)) is not None:
            return Literal(self._unescape(token.groups["sq"], token.pos))
        elif (token := self._accept(TokenKind.RANGE)) is not None:
            lo = self._parse_char(token.groups["lo"], token.pos)
            hi = self._parse_char(token.groups["hi"], token.pos)
            if lo > hi:
                raise self._error(f"empty character range {token.value}", token.pos)
            return Chars.between(lo, hi)
        elif (token := self._accept(TokenKind.REGEX)) is not None:
            source = re.sub(r"\\(.)", lambda m: "/" if m.group(1) == "/" else m.group(0), token.groups["regex"])
            try:
                return Pattern.of(source)
            except re.error as err:
                raise self._error(f"invalid pattern /{source}/: {err}", token.pos) from err
        elif self._accept(TokenKind.LPAREN) is not None:
            rule = self._parse_choice()
            self._expect(TokenKind.RPAREN, "')'")
            return rule
        elif self._current_token is not None and self._current_token.kind == TokenKind.PRECEDENCE:
            raise self._error("precedence!{ ... } is only allowed as a rule body")
        raise self._error(f"expected expression, got {self._describe()}")

    def parse(self) -> Grammar:
        rules: dict[str, Rule] = dict()
        while (parsed := self._parse_rule()) is not None:
            name, rule, pos = parsed
            if name in rules:
                raise DuplicateRuleError(name, pos, self._source)
            rules[name] = rule
        for name, pos in self._refs:
            if name not in rules:
                raise UnknownRuleError(name, pos)
        return Grammar(rules)


def parse_grammar(source: str, *, expand: bool = True, entrypoint: str | None = None) -> Grammar:
    """
    Reads PEG grammar source into a `Grammar`.

    Precedence blocks are rewritten into plain rules unless `expand=False` is
    passed, in which case the `PrecedenceGroup` bodies are kept as written (the
    matcher refuses to run such a grammar until `expand_precedence` was applied).
    """
    grammar = _GrammarParser(source).parse()
    if entrypoint is not None:
        grammar = Grammar(grammar, entrypoint)
    if expand:
        grammar = expand_precedence(grammar)
    if LOGGER.isEnabledFor(logging.DEBUG):
        LOGGER.debug(
            "parsed grammar with %d rules; entrypoint=%s; left recursive: %s",
            len(grammar),
            grammar.entrypoint,
            ", ".join(sorted(grammar.left_recursive)) or "none",
        )
    return grammar

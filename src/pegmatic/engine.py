import contextlib
import itertools
import logging
import sys
import threading
from collections.abc import Iterator
from typing import Final, final

from .defs import DEFAULT_OPTIONS, Opts
from .diagnostics import Diagnostics
from .exc import (
    EntrypointInferenceFailed,
    GrammarRecursionLimitExceeded,
    InexhaustiveParse,
    NoMatch,
    PrecedenceError,
    UnknownRuleError,
)
from .grammar import Grammar
from .memo import FAILED, MemoEntry, MemoKey, MemoTable
from .result import Failure, MatchResult, ParseOutcome, Success
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
    Repeat,
    Rule,
    RuleRef,
    Sequence,
    Silent,
)

LOGGER = logging.getLogger(__name__)

# interpreter frames one rule application may take, enough for bodies nested this deep
_FRAMES_PER_APPLICATION = 16


@final
class _RecursionLimit:
    """
    Raises the interpreter recursion limit while at least one match is running.

    The limit is global to the interpreter.  Concurrent matches share the raised
    limit and the last one to finish restores the previous value.
    """

    __slots__ = ("_lock", "_users", "_saved")

    def __init__(self) -> None:
        self._lock: Final = threading.Lock()
        self._users = 0
        self._saved = 0

    @contextlib.contextmanager
    def raised(self, frames: int) -> Iterator[None]:
        with self._lock:
            if self._users == 0:
                self._saved = sys.getrecursionlimit()
            self._users += 1
            if (limit := self._saved + frames) > sys.getrecursionlimit():
                sys.setrecursionlimit(limit)
        try:
            yield
        finally:
            with self._lock:
                self._users -= 1
                if self._users == 0:
                    sys.setrecursionlimit(self._saved)


_RECURSION_LIMIT: Final = _RecursionLimit()


def _unfold(expr: Sequence | Choice) -> list[Rule]:
    """The operands of a left-folded chain of the same combinator, in order."""
    kind = type(expr)
    items: list[Rule] = list()
    while isinstance(expr, kind):
        items.append(expr.right)
        expr = expr.left
    items.append(expr)
    items.reverse()
    return items


@final
class _Frame:
    """A rule application that is currently being evaluated."""

    __slots__ = ("key", "head", "tainted")

    def __init__(self, key: MemoKey) -> None:
        self.key: Final[MemoKey] = key
        # re-entered at the same position: this application is growing a seed
        self.head: bool = False
        # depends on the seed of an enclosing head, so its result is provisional
        self.tainted: bool = False


@final
class Matcher:
    """
    Evaluates the rules of one grammar against one input text.

    A matcher holds all the mutable state of a single match: the memo table, the
    furthest-failure diagnostics and the left-recursion bookkeeping.  Failure is
    signalled by returning `None`; matched rule applications are appended to the
    `out` list passed down the evaluation, which is truncated again whenever a
    branch fails.
    """

    __slots__ = (
        "_grammar",
        "_text",
        "_opts",
        "_stack",
        "_active",
        "_seeds",
        "_atomic",
        "memo",
        "diagnostics",
    )

    def __init__(self, grammar: Grammar, text: str, opts: Opts | None = None) -> None:
        if grammar.has_precedence_groups:
            raise PrecedenceError("grammar has unexpanded precedence groups, apply expand_precedence first")
        self._grammar: Final[Grammar] = grammar
        self._text: Final[str] = text
        self._opts = DEFAULT_OPTIONS.override(opts)
        self._stack: Final[list[_Frame]] = list()
        self._active: Final[dict[MemoKey, int]] = dict()
        self._seeds: Final[dict[MemoKey, MemoEntry]] = dict()
        self._atomic: int = 0
        self.memo: Final[MemoTable] = MemoTable(enabled=self._opts.use_cache)
        self.diagnostics: Final[Diagnostics] = Diagnostics(text)

    def apply(self, name: str, pos: int) -> MemoEntry:
        if name not in self._grammar:
            raise UnknownRuleError(name)
        out: list[MatchResult] = list()
        with _RECURSION_LIMIT.raised(self._opts.max_depth * _FRAMES_PER_APPLICATION):
            try:
                end = self._apply(name, pos, out)
            except GrammarRecursionLimitExceeded:
                raise
            except RecursionError as err:
                # a rule body nested deeper than the frames set aside for it
                raise GrammarRecursionLimitExceeded(
                    "interpreter recursion", sys.getrecursionlimit(), name, pos
                ) from err
        if end is None:
            return FAILED
        return MemoEntry(end, tuple(out))

    def _rule(self, name: str) -> Rule:
        try:
            return self._grammar[name]
        except KeyError as err:
            raise UnknownRuleError(name) from err

    def _current_rule(self) -> str | None:
        return self._stack[-1].key[0] if self._stack else None

    def _fail(self, pos: int, expr: Rule) -> None:
        self.diagnostics.fail(pos, expr, self._current_rule())

    def _taint(self, key: MemoKey) -> None:
        for frame in itertools.islice(self._stack, self._active[key] + 1, None):
            frame.tainted = True

    @staticmethod
    def _replay(entry: MemoEntry, out: list[MatchResult]) -> int | None:
        if entry.end is not None:
            out.extend(entry.nodes)
        return entry.end

    def _apply(self, name: str, pos: int, out: list[MatchResult]) -> int | None:
        key = (name, pos)
        if (seed := self._seeds.get(key)) is not None:
            self._taint(key)
            return self._replay(seed, out)
        if (ix := self._active.get(key)) is not None:
            # left recursion: the re-entry fails and the active application grows from there
            self._stack[ix].head = True
            self._seeds[key] = FAILED
            self._taint(key)
            return None
        if (entry := self.memo.get(key)) is not None:
            return self._replay(entry, out)
        rule = self._rule(name)
        if len(self._stack) >= self._opts.max_depth:
            raise GrammarRecursionLimitExceeded("depth", self._opts.max_depth, name, pos)
        frame = _Frame(key)
        self._active[key] = len(self._stack)
        self._stack.append(frame)
        try:
            entry = self._evaluate(name, rule, pos)
            if frame.head:
                entry = self._grow(frame, name, rule, pos, entry)
        finally:
            self._stack.pop()
            del self._active[key]
            self._seeds.pop(key, None)
        # inside negative lookahead failures go unrecorded, so a cached entry would hide them later
        if not (frame.tainted or self._atomic or self.diagnostics.quiet or isinstance(rule, Atomic)):
            self.memo.put(key, entry)
        return self._replay(entry, out)

    def _evaluate(self, name: str, rule: Rule, pos: int) -> MemoEntry:
        children: list[MatchResult] = list()
        if (end := self._eval(rule, pos, children)) is None:
            return FAILED
        if isinstance(rule, Silent):
            return MemoEntry(end, ())
        return MemoEntry(end, (MatchResult(name, pos, end, self._text[pos:end], tuple(children)),))

    def _grow(self, frame: _Frame, name: str, rule: Rule, pos: int, best: MemoEntry) -> MemoEntry:
        if best.end is None:
            return best
        for iteration in itertools.count(1):
            if iteration > self._opts.max_growth:
                raise GrammarRecursionLimitExceeded("left recursion growth", self._opts.max_growth, name, pos)
            self._seeds[frame.key] = best
            entry = self._evaluate(name, rule, pos)
            if entry.end is None or entry.end <= best.end:  # type: ignore[operator]
                LOGGER.debug("left recursion in %s at pos=%d settled after %d iterations", name, pos, iteration)
                break
            best = entry
        return best

    def _eval(self, expr: Rule, pos: int, out: list[MatchResult]) -> int | None:
        match expr:
            case Literal(literal):
                if self._text.startswith(literal, pos):
                    return pos + len(literal)
                self._fail(pos, expr)
                return None
            case Pattern(regex):
                if (m := regex.match(self._text, pos)) is not None:
                    return m.end()
                self._fail(pos, expr)
                return None
            case Chars(allowed):
                if pos < len(self._text) and ord(self._text[pos]) in allowed:
                    return pos + 1
                self._fail(pos, expr)
                return None
            case RuleRef(name):
                return self._apply(name, pos, out)
            case Sequence():
                mark = len(out)
                for item in _unfold(expr):
                    if (end := self._eval(item, pos, out)) is None:
                        del out[mark:]
                        return None
                    pos = end
                return pos
            case Choice():
                mark = len(out)
                for alternative in _unfold(expr):
                    if (end := self._eval(alternative, pos, out)) is not None:
                        return end
                    del out[mark:]
                return None
            case Optional(inner):
                mark = len(out)
                if (end := self._eval(inner, pos, out)) is not None:
                    return end
                del out[mark:]
                return pos
            case Repeat(inner, min_, max_):
                return self._eval_repeat(inner, min_, max_, pos, out)
            case NotPredicate(inner):
                self.diagnostics.quiet += 1
                try:
                    end = self._eval(inner, pos, [])
                finally:
                    self.diagnostics.quiet -= 1
                if end is None:
                    return pos
                self._fail(pos, expr)
                return None
            case AndPredicate(inner):
                if self._eval(inner, pos, []) is None:
                    return None
                return pos
            case Silent(inner):
                return self._eval(inner, pos, [])
            case Atomic(inner):
                self._atomic += 1
                try:
                    return self._eval(inner, pos, [])
                finally:
                    self._atomic -= 1
            case PrecedenceGroup():
                raise PrecedenceError("precedence group reached the matcher, apply expand_precedence first")
        raise RuntimeError(f"Unknown expression: {expr}; pos={pos}")

    def _eval_repeat(
        self, inner: Rule, min_: int, max_: int | None, pos: int, out: list[MatchResult]
    ) -> int | None:
        mark = len(out)
        count = 0
        while max_ is None or count < max_:
            step = len(out)
            if (end := self._eval(inner, pos, out)) is None:
                del out[step:]
                break
            count += 1
            if end == pos:
                # an empty iteration would repeat forever; it counts once
                break
            pos = end
        if count < min_:
            del out[mark:]
            return None
        return pos


def _resolve(grammar: Grammar, rule: str | None) -> str:
    if rule is None:
        if (rule := grammar.entrypoint) is None:
            raise EntrypointInferenceFailed
    if rule not in grammar:
        raise UnknownRuleError(rule)
    return rule


def _root(name: str, pos: int, entry: MemoEntry, text: str) -> MatchResult:
    assert entry.end is not None
    match entry.nodes:
        case (MatchResult(rule=rule) as node,) if rule == name:
            return node
    return MatchResult(name, pos, entry.end, text[pos : entry.end], entry.nodes)


def match(
    grammar: Grammar,
    rule: str | None = None,
    text: str = "",
    position: int = 0,
    *,
    opts: Opts | None = None,
) -> ParseOutcome:
    """
    Applies `rule` (the grammar's entrypoint if `None`) to `text` at `position`.

    The rule does not have to consume the whole input.  Returns `Success` carrying
    the match tree, or `Failure` carrying the diagnostic for the furthest position
    the match got to.
    """
    name = _resolve(grammar, rule)
    if not 0 <= position <= len(text):
        raise ValueError(f"position {position} out of range for input of length {len(text)}")
    matcher = Matcher(grammar, text, opts)
    entry = matcher.apply(name, position)
    LOGGER.debug(
        "matched %s at pos=%d: end=%s; memo hits=%d misses=%d entries=%d",
        name,
        position,
        entry.end,
        matcher.memo.hits,
        matcher.memo.misses,
        len(matcher.memo),
    )
    if entry.end is None:
        return Failure(matcher.diagnostics.report(position, name))
    return Success(_root(name, position, entry, text))


def parse(grammar: Grammar, text: str, rule: str | None = None, *, opts: Opts | None = None) -> MatchResult:
    """
    Tries to parse the complete string passed as second argument.

    Raises `NoMatch` if the rule fails, and `InexhaustiveParse` if it succeeds
    without consuming all of the input.
    """
    name = _resolve(grammar, rule)
    matcher = Matcher(grammar, text, opts)
    entry = matcher.apply(name, 0)
    if entry.end is None:
        raise NoMatch(matcher.diagnostics.report(0, name))
    if entry.end != len(text):
        matcher.diagnostics.fail(entry.end, "end of input", None)
        raise InexhaustiveParse(matcher.diagnostics.report(entry.end, "end of input"))
    return _root(name, 0, entry, text)

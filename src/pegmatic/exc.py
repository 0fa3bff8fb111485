from typing import TYPE_CHECKING, final

from .util import line_col

if TYPE_CHECKING:
    from .diagnostics import Diagnostic


class PegError(Exception):
    pass


class GrammarError(PegError):
    pass


class GrammarSyntaxError(GrammarError, ValueError):
    def __init__(self, position: int, message: str, source: str | None = None):
        self.position = position
        self.message = message
        if source is None:
            super().__init__(f"{message}; pos={position}")
        else:
            line, column = line_col(source, position)
            super().__init__(f"{message}; line {line}, column {column} (pos={position})")


@final
class DuplicateRuleError(GrammarSyntaxError):
    def __init__(self, name: str, position: int, source: str | None = None):
        self.name = name
        super().__init__(position, f"redefinition of rule {name}", source)


@final
class UnknownRuleError(GrammarError, LookupError):
    def __init__(self, name: str, position: int | None = None, rule: str | None = None):
        self.name = name
        self.position = position
        msg = f"reference to unknown rule {name}"
        if rule is not None:
            msg = f"rule {rule} references unknown rule {name}"
        if position is not None:
            msg = f"{msg}; pos={position}"
        super().__init__(msg)


@final
class PrecedenceError(GrammarError, ValueError):
    pass


@final
class EntrypointInferenceFailed(GrammarError):
    def __init__(self):
        super().__init__("can not infer entrypoint from grammar, must be specified")


class NoMatch(PegError):
    def __init__(self, diagnostic: "Diagnostic"):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def position(self) -> int:
        return self.diagnostic.position

    @property
    def expected(self) -> frozenset[str]:
        return self.diagnostic.expected


@final
class InexhaustiveParse(NoMatch):
    pass


@final
class GrammarRecursionLimitExceeded(PegError, RecursionError):
    def __init__(self, what: str, limit: int, rule: str | None, position: int):
        self.limit = limit
        self.rule = rule
        self.position = position
        super().__init__(f"{what} limit of {limit} exceeded; pos={position}; trying to apply {rule}")

from .defs import (
    Associativity,
    Opts,
)
from .diagnostics import Diagnostic
from .engine import (
    Matcher,
    match,
    parse,
)
from .exc import (
    DuplicateRuleError,
    EntrypointInferenceFailed,
    GrammarError,
    GrammarRecursionLimitExceeded,
    GrammarSyntaxError,
    InexhaustiveParse,
    NoMatch,
    PegError,
    PrecedenceError,
    UnknownRuleError,
)
from .grammar import Grammar
from .grammars import (
    load_grammar,
    read_grammar,
)
from .reader import parse_grammar
from .precedence import expand_precedence
from .result import (
    Failure,
    MatchResult,
    ParseOutcome,
    Success,
)
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

__all__ = (
    "AndPredicate",
    "Associativity",
    "Atomic",
    "Chars",
    "Choice",
    "Diagnostic",
    "DuplicateRuleError",
    "EntrypointInferenceFailed",
    "Failure",
    "Grammar",
    "GrammarError",
    "GrammarRecursionLimitExceeded",
    "GrammarSyntaxError",
    "InexhaustiveParse",
    "Literal",
    "MatchResult",
    "Matcher",
    "NoMatch",
    "NotPredicate",
    "Optional",
    "Opts",
    "ParseOutcome",
    "Pattern",
    "PegError",
    "PrecedenceError",
    "PrecedenceGroup",
    "PrecedenceLevel",
    "Repeat",
    "Rule",
    "RuleRef",
    "Sequence",
    "Silent",
    "Success",
    "UnknownRuleError",
    "expand_precedence",
    "load_grammar",
    "match",
    "parse",
    "parse_grammar",
    "read_grammar",
)

import logging

from .defs import Associativity
from .exc import PrecedenceError
from .grammar import Grammar
from .rules import (
    AndPredicate,
    Atomic,
    Choice,
    NotPredicate,
    Optional,
    PrecedenceGroup,
    Repeat,
    Rule,
    RuleRef,
    Sequence,
    Silent,
)

LOGGER = logging.getLogger(__name__)


def level_name(name: str, priority: int) -> str:
    return f"{name}_{priority}"


def _contains_group(rule: Rule) -> bool:
    match rule:
        case PrecedenceGroup():
            return True
        case Sequence(left, right) | Choice(left, right):
            return _contains_group(left) or _contains_group(right)
        case Optional(e) | Repeat(e) | NotPredicate(e) | AndPredicate(e) | Silent(e) | Atomic(e):
            return _contains_group(e)
    return False


def expand_group(name: str, group: PrecedenceGroup) -> dict[str, Rule]:
    """
    Rewrites one precedence group into a chain of rules, loosest level first.

    The loosest level keeps `name`, every tighter level becomes `name_<priority>`.
    Each level takes the next tighter level as its operand, the tightest level
    takes the group's operand expression:

    - left:  ``next ~ (op ~ next)*``
    - right: ``next ~ (op ~ self)?``
    - none:  ``next ~ (op ~ next)?``
    """
    levels = sorted(group.levels, key=lambda level: level.priority)
    names = [name, *(level_name(name, level.priority) for level in levels[1:])]
    rules: dict[str, Rule] = dict()
    for ix, level in enumerate(levels):
        operand: Rule = RuleRef(names[ix + 1]) if ix + 1 < len(levels) else group.operand
        match level.associativity:
            case Associativity.LEFT:
                body = Sequence(operand, Repeat(Sequence(level.rule, operand), 0, None))
            case Associativity.RIGHT:
                body = Sequence(operand, Optional(Sequence(level.rule, RuleRef(names[ix]))))
            case Associativity.NONE:
                body = Sequence(operand, Optional(Sequence(level.rule, operand)))
        rules[names[ix]] = body
    return rules


def expand_precedence(grammar: Grammar) -> Grammar:
    """
    Replaces every `PrecedenceGroup` rule body with plain rules.

    Idempotent: a grammar without precedence groups is returned as is, so expanding
    an expanded grammar changes nothing.
    """
    expanded: dict[str, Rule] = dict()
    for name, rule in grammar.items():
        match rule:
            case PrecedenceGroup(levels, operand):
                if _contains_group(operand) or any(_contains_group(level.rule) for level in levels):
                    raise PrecedenceError(f"precedence groups can not be nested; rule {name}")
                for new_name, body in expand_group(name, rule).items():
                    if new_name != name and new_name in grammar and grammar[new_name] != body:
                        raise PrecedenceError(f"precedence level {new_name} of rule {name} collides with a rule")
                    if new_name in expanded and expanded[new_name] != body:
                        raise PrecedenceError(f"precedence level {new_name} of rule {name} is defined twice")
                    expanded[new_name] = body
            case _ if _contains_group(rule):
                raise PrecedenceError(f"precedence group must be the whole body of rule {name}")
    if not expanded:
        return grammar
    LOGGER.debug("expanded precedence rules: %s", ", ".join(expanded))
    return grammar.replace(expanded)

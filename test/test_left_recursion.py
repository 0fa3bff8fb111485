import textwrap

import pytest

from pegmatic import (
    GrammarRecursionLimitExceeded,
    MatchResult,
    NoMatch,
    Opts,
    match,
    parse,
    parse_grammar,
)

_DIRECT = textwrap.dedent("""
    E = { E ~ "+" ~ num | num }
    num = @{ ASCII_DIGIT+ }
""")

_INDIRECT = textwrap.dedent("""
    expr = { sum | num }
    sum = { expr ~ "+" ~ num }
    num = @{ ASCII_DIGIT+ }
""")


def _leaves(tree: MatchResult, rule: str) -> list[str]:
    return [node.text for node in tree.find_all(rule)]


@pytest.mark.parametrize("use_cache", [True, False])
def test_direct_left_recursion(use_cache: bool):
    """
    `E = E "+" num | num` grows its seed one `+` at a time and ends up left associative.
    """
    g = parse_grammar(_DIRECT)
    tree = parse(g, "1+2+3", opts=Opts(use_cache=use_cache))
    assert tree.span == (0, 5)
    assert [child.rule for child in tree.children] == ["E", "num"]
    assert tree.children[0].text == "1+2"
    assert tree.children[0].children[0].text == "1"
    assert tree.children[1].text == "3"
    assert _leaves(tree, "num") == ["1", "2", "3"]


@pytest.mark.parametrize("use_cache", [True, False])
def test_indirect_left_recursion(use_cache: bool):
    g = parse_grammar(_INDIRECT)
    tree = parse(g, "1+2+3", opts=Opts(use_cache=use_cache))
    assert tree.rule == "expr"
    assert [node.text for node in tree.find_all("sum")] == ["1+2+3", "1+2"]
    assert _leaves(tree, "num") == ["1", "2", "3"]


def test_left_recursive_rules():
    assert parse_grammar(_DIRECT).left_recursive == {"E"}
    assert parse_grammar(_INDIRECT).left_recursive == {"expr", "sum"}
    assert parse_grammar('a = { "x" ~ a | "y" }').left_recursive == frozenset()


def test_left_recursion_through_nullable_prefix():
    g = parse_grammar(
        textwrap.dedent("""
            a = { ws ~ a ~ "x" | "y" }
            ws = _{ " "* }
        """)
    )
    assert g.left_recursive == {"a"}
    assert parse(g, "yxx").text == "yxx"


def test_left_recursion_without_base_case():
    g = parse_grammar('a = { a ~ "x" }')
    with pytest.raises(NoMatch):
        parse(g, "xx")


def test_left_recursion_single_step():
    g = parse_grammar(_DIRECT)
    assert match(g, "E", "7").unwrap().children == (MatchResult("num", 0, 1, "7"),)
    assert match(g, "E", "7+").end == 1


def test_nested_left_recursion():
    """
    Two left recursive rules where one is the operand of the other.
    """
    g = parse_grammar(
        textwrap.dedent("""
            sum = { sum ~ "+" ~ product | product }
            product = { product ~ "*" ~ num | num }
            num = @{ ASCII_DIGIT+ }
        """)
    )
    tree = parse(g, "1*2+3*4*5")
    assert [child.text for child in tree.children] == ["1*2", "3*4*5"]
    products = [node.text for node in tree.children[1].find_all("product")]
    assert products == ["3*4*5", "3*4", "3"]


def test_growth_limit():
    g = parse_grammar(_DIRECT)
    with pytest.raises(GrammarRecursionLimitExceeded) as err:
        parse(g, "1+2+3", opts=Opts(max_growth=1))
    assert err.value.rule == "E"
    assert isinstance(err.value, RecursionError)
    assert parse(g, "1+2+3", opts=Opts(max_growth=3)).end == 5

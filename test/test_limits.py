import sys
from concurrent.futures import ThreadPoolExecutor

import pytest

from pegmatic import GrammarRecursionLimitExceeded, Opts, match, parse, parse_grammar
from pegmatic.grammars import load_grammar

_NESTED = 'a = { "(" ~ a ~ ")" | "x" }'
_TAIL = 'a = { "x" ~ a | "" }'


def test_depth_limit():
    g = parse_grammar(_NESTED)
    assert parse(g, "(((x)))").end == 7
    with pytest.raises(GrammarRecursionLimitExceeded) as err:
        parse(g, "(" * 400 + "x" + ")" * 400)
    assert err.value.limit == 300
    assert err.value.rule == "a"
    assert isinstance(err.value, RecursionError)


def test_depth_counts_rule_applications():
    """
    Long choices and sequences inside a rule body do not use up the depth limit.
    """
    g = parse_grammar(_TAIL)
    assert parse(g, "x" * 150).end == 150
    assert parse(g, "x" * 298).end == 298
    with pytest.raises(GrammarRecursionLimitExceeded):
        parse(g, "x" * 300)


@pytest.mark.parametrize("depth", [25, 100, 140])
def test_deeply_nested_json(depth: int):
    text = "[" * depth + "]" * depth
    tree = parse(load_grammar("json"), text)
    assert tree.end == len(text)
    assert len(list(tree.find_all("array"))) == depth


def test_depth_limit_is_configurable():
    g = parse_grammar(_NESTED)
    text = "(" * 10 + "x" + ")" * 10
    with pytest.raises(GrammarRecursionLimitExceeded):
        parse(g, text, opts=Opts(max_depth=5))
    assert parse(g, text, opts=Opts(max_depth=100)).end == len(text)


def test_large_depth_limit():
    g = parse_grammar(_TAIL)
    assert parse(g, "x" * 2000, opts=Opts(max_depth=10_000)).end == 2000


def test_interpreter_recursion_limit_is_restored():
    limit = sys.getrecursionlimit()
    parse(parse_grammar(_TAIL), "x" * 100)
    with pytest.raises(GrammarRecursionLimitExceeded):
        parse(parse_grammar(_NESTED), "(" * 400)
    assert sys.getrecursionlimit() == limit


def test_interpreter_recursion_is_reported_as_limit(monkeypatch: pytest.MonkeyPatch):
    """
    Running out of interpreter frames surfaces as the typed limit error, never a bare RecursionError.
    """
    monkeypatch.setattr("pegmatic.engine._FRAMES_PER_APPLICATION", 0)
    g = parse_grammar(_TAIL)
    with pytest.raises(GrammarRecursionLimitExceeded) as err:
        parse(g, "x" * 5000, opts=Opts(max_depth=10_000))
    assert isinstance(err.value.__cause__, RecursionError)
    assert not isinstance(err.value.__cause__, GrammarRecursionLimitExceeded)


def test_opts_override():
    opts = Opts(max_depth=20)
    assert opts(use_cache=False) == Opts(use_cache=False, max_depth=20)
    assert opts(max_depth=30).max_depth == 30


def test_concurrent_matches_share_the_grammar():
    """
    A grammar is read-only, so any number of threads can match against it at the same time.
    """
    g = load_grammar("json")
    texts = [f'{{"k{i}": [{i}, {"[" * (i % 5 + 1)}{"]" * (i % 5 + 1)}]}}' for i in range(64)] + ["[1,]"] * 8
    texts += ["[" * 60 + "]" * 60] * 8
    expected = [match(g, None, text) for text in texts]
    with ThreadPoolExecutor(max_workers=8) as pool:
        actual = list(pool.map(lambda text: match(g, None, text), texts))
    assert actual == expected
    assert sum(outcome.success for outcome in actual) == 72

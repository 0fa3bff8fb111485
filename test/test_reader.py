import re
import textwrap

import pytest

from pegmatic import (
    AndPredicate,
    Atomic,
    Chars,
    Choice,
    DuplicateRuleError,
    GrammarSyntaxError,
    Literal,
    NotPredicate,
    Optional,
    Pattern,
    PrecedenceGroup,
    Repeat,
    RuleRef,
    Sequence,
    Silent,
    UnknownRuleError,
    parse_grammar,
)
from pegmatic.grammars import BUNDLED, read_grammar


def test_structure():
    g = parse_grammar(
        textwrap.dedent("""
            a = { "x" ~ b | c* }
            b = { "y" }
            c = { "z" }
        """)
    )
    assert list(g) == ["a", "b", "c"]
    assert g["a"] == Choice(Sequence(Literal("x"), RuleRef("b")), Repeat(RuleRef("c"), 0, None))
    assert g["b"] == Literal("y")


def test_operator_precedence():
    """
    Choice binds loosest, then sequence, then the prefix operators, then the postfix operators.
    """
    g = parse_grammar('a = { !b ~ &b* | _b? ~ @b+ }\nb = { "b" }')
    b = RuleRef("b")
    assert g["a"] == Choice(
        Sequence(NotPredicate(b), AndPredicate(Repeat(b, 0, None))),
        Sequence(Silent(Optional(b)), Atomic(Repeat(b, 1, None))),
    )


def test_sequence_and_choice_fold_left():
    g = parse_grammar('a = { "1" ~ "2" ~ "3" | "4" | "5" }')
    assert g["a"] == Choice(
        Choice(Sequence(Sequence(Literal("1"), Literal("2")), Literal("3")), Literal("4")),
        Literal("5"),
    )


def test_parentheses():
    g = parse_grammar('a = { "1" ~ ("2" | "3") }')
    assert g["a"] == Sequence(Literal("1"), Choice(Literal("2"), Literal("3")))


def test_rule_bodies():
    g = parse_grammar('a = _{ "x" }\nb = @{ "y" }\nc = { "z" }')
    assert g["a"] == Silent(Literal("x"))
    assert g["b"] == Atomic(Literal("y"))
    assert g["c"] == Literal("z")


@pytest.mark.parametrize(
    ("suffix", "bounds"),
    [
        ("?", None),
        ("*", (0, None)),
        ("+", (1, None)),
        ("{3}", (3, 3)),
        ("{2,}", (2, None)),
        ("{,4}", (0, 4)),
        ("{1,5}", (1, 5)),
        ("{ 1 , 5 }", (1, 5)),
    ],
)
def test_repetition(suffix: str, bounds: tuple[int, int | None] | None):
    g = parse_grammar(f'a = {{ "x"{suffix} }}')
    if bounds is None:
        assert g["a"] == Optional(Literal("x"))
    else:
        assert g["a"] == Repeat(Literal("x"), *bounds)


@pytest.mark.parametrize(
    ("source", "text"),
    [
        (r'"plain"', "plain"),
        (r"'single'", "single"),
        (r'"a\nb\tc\rd"', "a\nb\tc\rd"),
        (r'"\"\'\\"', "\"'\\"),
        (r"'\"\''", "\"'"),
        (r'"\x41\x7e"', "A~"),
        (r'"\u{1F600}\u{e9}"', "\U0001f600é"),
        (r'"\0"', "\0"),
        ('""', ""),
    ],
)
def test_literals(source: str, text: str):
    assert parse_grammar(f"a = {{ {source} }}")["a"] == Literal(text)


def test_character_ranges():
    g = parse_grammar("a = { 'a'..'f' }\nb = { 'a'..'c' | 'x'..'z' | '_'..'_' }\nc = { '\\x00'..'\\x1f' }")
    assert g["a"] == Chars.between("a", "f")
    assert g["b"] == Chars.of([Chars.between("a", "c"), Chars.between("x", "z"), Chars.between("_", "_")])
    assert g["c"] == Chars.between("\0", "\x1f")


def test_patterns():
    g = parse_grammar(r"a = { /[0-9]+(\.[0-9]+)?/ }" + "\n" + r"b = { /a\/b/ }")
    assert g["a"] == Pattern(re.compile(r"[0-9]+(\.[0-9]+)?"))
    assert g["b"] == Pattern(re.compile("a/b"))


@pytest.mark.parametrize(
    ("builtin", "accepts", "rejects"),
    [
        ("ASCII_DIGIT", "7", "a"),
        ("ASCII_ALPHA", "Q", "1"),
        ("ASCII_ALPHANUMERIC", "z", "-"),
    ],
)
def test_builtin_character_classes(builtin: str, accepts: str, rejects: str):
    rule = parse_grammar(f"a = {{ {builtin} }}")["a"]
    assert isinstance(rule, Chars)
    assert ord(accepts) in rule.allowed
    assert ord(rejects) not in rule.allowed


def test_comments_and_whitespace():
    g = parse_grammar(
        textwrap.dedent("""
            // leading comment
            a = {   // trailing comment
                "x"
                ~ "y"   // another one
            }
        """)
    )
    assert g["a"] == Sequence(Literal("x"), Literal("y"))


def test_precedence_block():
    g = parse_grammar(
        textwrap.dedent("""
            expr = precedence!{
                num
                2 left "*" | "/"
                1 left "+" | "-"
                3 right "^"
            }
            num = { ASCII_DIGIT+ }
        """),
        expand=False,
    )
    group = g["expr"]
    assert isinstance(group, PrecedenceGroup)
    assert group.operand == RuleRef("num")
    assert [level.priority for level in group.levels] == [1, 2, 3]
    assert [level.associativity.value for level in group.levels] == ["left", "left", "right"]
    assert group.levels[0].rule == Choice(Literal("+"), Literal("-"))


@pytest.mark.parametrize(
    "source",
    [
        'a = { "x"',
        'a = { "x" ~ }',
        'a = { "x" | }',
        'a = "x"',
        '= { "x" }',
        'a = { ( "x" }',
        'a = { "x" $ }',
        'a = { "\\q" }',
        "a = { 'z'..'a' }",
        "a = { 'ab'..'c' }",
        'a = { "x"{3,1} }',
        "a = { /[/ }",
        'ANY = { "x" }',
        'a = { "x" ~ precedence!{ "y" 1 left "z" } }',
        'a = precedence!{ "y" }',
        'a = precedence!{ "y" 1 up "z" }',
        'a = precedence!{ "y" 1 left "z" 1 left "w" }',
    ],
)
def test_syntax_errors(source: str):
    with pytest.raises(GrammarSyntaxError):
        parse_grammar(source)


def test_syntax_error_position():
    source = 'a = { "x" }\nb = { "y" ~ }'
    with pytest.raises(GrammarSyntaxError) as err:
        parse_grammar(source)
    assert err.value.position == source.rindex("}")
    assert "line 2, column 13" in str(err.value)


def test_duplicate_rule():
    source = 'a = { "x" }\na = { "y" }'
    with pytest.raises(DuplicateRuleError) as err:
        parse_grammar(source)
    assert err.value.name == "a"
    assert err.value.position == 12
    assert isinstance(err.value, GrammarSyntaxError)


def test_unknown_rule():
    source = 'a = { "x" ~ b }'
    with pytest.raises(UnknownRuleError) as err:
        parse_grammar(source)
    assert err.value.name == "b"
    assert err.value.position == source.index("b")


@pytest.mark.parametrize("name", BUNDLED)
def test_round_trip(name: str):
    """
    Rendering a grammar gives grammar source that parses back into an equal grammar.
    """
    g = parse_grammar(read_grammar(name), expand=False)
    assert parse_grammar(str(g), expand=False) == g


def test_round_trip_special_characters():
    g = parse_grammar(
        r"""a = { "\"\\\n" ~ '\'' ~ '\x00'..'\x1f' ~ /a\/b/ ~ ("x" ~ "y") ~ ("p" | "q")+ ~ !(&"z") }"""
    )
    assert parse_grammar(str(g)) == g

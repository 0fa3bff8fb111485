import io
from pathlib import Path

import pytest

from pegmatic import GrammarSyntaxError
from pegmatic.tokenize import TokenKind, clean, render_grammar, tokenize


def _kinds(source: str) -> list[TokenKind]:
    return [token.kind for token in clean(tokenize(source), source)]


def test_token_kinds():
    assert _kinds('a = _{ "x"{2} ~ \'a\'..\'z\' | /[0-9]/ }') == [
        TokenKind.IDENT,
        TokenKind.EQUALS,
        TokenKind.SILENT_BODY,
        TokenKind.STRING,
        TokenKind.BOUNDS,
        TokenKind.TILDE,
        TokenKind.RANGE,
        TokenKind.PIPE,
        TokenKind.REGEX,
        TokenKind.RBRACE,
    ]


def test_prefix_tokens():
    assert _kinds("e = precedence!{ !a &b _c @d 1 left e }") == [
        TokenKind.IDENT,
        TokenKind.EQUALS,
        TokenKind.PRECEDENCE,
        TokenKind.BANG,
        TokenKind.IDENT,
        TokenKind.AMP,
        TokenKind.IDENT,
        TokenKind.UNDERSCORE,
        TokenKind.IDENT,
        TokenKind.AT,
        TokenKind.IDENT,
        TokenKind.INT,
        TokenKind.IDENT,
        TokenKind.IDENT,
        TokenKind.RBRACE,
    ]


def test_groups_and_positions():
    tokens = list(clean(tokenize("x = { 'a'..'f'{1,3} }")))
    rng, bounds = tokens[3], tokens[4]
    assert rng.groups == {"lo": "a", "hi": "f"}
    assert rng.pos == 6
    assert bounds.groups == {"min": "1", "max": "3"}
    assert bounds.value == "{1,3}"


def test_comments_are_skipped():
    tokens = list(tokenize("// comment\na"))
    assert [token.kind for token in tokens] == [TokenKind.SKIP, TokenKind.SKIP, TokenKind.IDENT]
    assert _kinds("// comment\na") == [TokenKind.IDENT]


def test_mismatch():
    with pytest.raises(GrammarSyntaxError) as err:
        _kinds("a = { # }")
    assert err.value.position == 6


def test_tokens_cover_the_source():
    source = 'a = { "x" ~ b? } // done\nb = @{ \'0\'..\'9\'+ }\n'
    assert "".join(token.value for token in tokenize(source)) == source


def test_render_grammar(tmp_path: Path):
    path = tmp_path / "small.peg"
    path.write_text('a = { "x" }\n', encoding="utf8")
    fp = io.StringIO()
    render_grammar(path, fp, render_groups=True)
    out = fp.getvalue()
    assert "SMALL.PEG" in out
    assert '"x"' in out
    assert "'dq': 'x'" in out

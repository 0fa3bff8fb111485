import re
import sys
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from typing import Final, NamedTuple, TextIO, final

from colorama import Back, Fore, Style

from .exc import GrammarSyntaxError


@final
class TokenDef(NamedTuple):
    pattern: re.Pattern[str]
    style: str | tuple[str, ...] = Style.RESET_ALL

    def get_style(self) -> tuple[str, ...]:
        if isinstance(self.style, tuple):
            return self.style
        return (self.style,)


_IDENT: Final[re.Pattern[str]] = re.compile(r"[A-Za-z][A-Za-z0-9_]*")

# a single, possibly escaped, character inside single quotes
_QCHAR: Final[str] = r"(?:\\u\{[0-9a-fA-F]+\}|\\x[0-9a-fA-F]{2}|\\.|[^'\\\n])"


@final
class TokenKind(Enum):
    SKIP = TokenDef(
        pattern=re.compile(r"\s+|//[^\n]*"),
        style=Fore.LIGHTBLACK_EX,
    )
    PRECEDENCE = TokenDef(
        pattern=re.compile(r"precedence!\{"),
        style=(Back.BLACK, Style.BRIGHT, Fore.LIGHTRED_EX),
    )
    SILENT_BODY = TokenDef(
        pattern=re.compile(r"_\{"),
        style=(Back.BLACK, Style.BRIGHT, Fore.GREEN),
    )
    ATOMIC_BODY = TokenDef(
        pattern=re.compile(r"@\{"),
        style=(Back.BLACK, Style.BRIGHT, Fore.GREEN),
    )
    BOUNDS = TokenDef(
        pattern=re.compile(r"\{\s*(?:(?P<exact>[0-9]+)|(?P<min>[0-9]*)\s*,\s*(?P<max>[0-9]*))\s*\}"),
        style=(Back.BLACK, Fore.CYAN),
    )
    LBRACE = TokenDef(
        pattern=re.compile(r"\{"),
        style=(Back.BLACK, Fore.GREEN),
    )
    RBRACE = TokenDef(
        pattern=re.compile(r"\}"),
        style=(Back.BLACK, Fore.GREEN),
    )
    STRING = TokenDef(
        pattern=re.compile(r'"(?P<dq>(?:\\.|[^"\\\n])*)"'),
        style=(Back.BLACK, Fore.BLUE),
    )
    RANGE = TokenDef(
        pattern=re.compile(rf"'(?P<lo>{_QCHAR})'\s*\.\.\s*'(?P<hi>{_QCHAR})'"),
        style=(Back.BLACK, Fore.MAGENTA),
    )
    QSTRING = TokenDef(
        pattern=re.compile(r"'(?P<sq>(?:\\.|[^'\\\n])*)'"),
        style=(Back.BLACK, Fore.BLUE),
    )
    REGEX = TokenDef(
        pattern=re.compile(r"/(?P<regex>(?:\\.|[^/\\\n])+)/"),
        style=(Back.BLACK, Fore.MAGENTA),
    )
    INT = TokenDef(
        pattern=re.compile(r"[0-9]+"),
        style=(Back.BLACK, Fore.CYAN),
    )
    IDENT = TokenDef(
        pattern=_IDENT,
        style=(Back.BLACK, Fore.YELLOW),
    )
    EQUALS = TokenDef(
        pattern=re.compile(r"="),
        style=(Back.BLACK, Fore.GREEN),
    )
    PIPE = TokenDef(
        pattern=re.compile(r"\|"),
        style=(Back.BLACK, Fore.GREEN),
    )
    TILDE = TokenDef(
        pattern=re.compile(r"~"),
        style=(Back.BLACK, Fore.GREEN),
    )
    QUESTION = TokenDef(
        pattern=re.compile(r"\?"),
        style=(Back.BLACK, Fore.CYAN),
    )
    STAR = TokenDef(
        pattern=re.compile(r"\*"),
        style=(Back.BLACK, Fore.CYAN),
    )
    PLUS = TokenDef(
        pattern=re.compile(r"\+"),
        style=(Back.BLACK, Fore.CYAN),
    )
    BANG = TokenDef(
        pattern=re.compile(r"!"),
        style=(Back.BLACK, Fore.LIGHTRED_EX),
    )
    AMP = TokenDef(
        pattern=re.compile(r"&"),
        style=(Back.BLACK, Fore.LIGHTRED_EX),
    )
    UNDERSCORE = TokenDef(
        pattern=re.compile(r"_"),
        style=(Back.BLACK, Fore.LIGHTRED_EX),
    )
    AT = TokenDef(
        pattern=re.compile(r"@"),
        style=(Back.BLACK, Fore.LIGHTRED_EX),
    )
    LPAREN = TokenDef(
        pattern=re.compile(r"\("),
        style=(Back.BLACK, Fore.GREEN),
    )
    RPAREN = TokenDef(
        pattern=re.compile(r"\)"),
        style=(Back.BLACK, Fore.GREEN),
    )
    MISMATCH = TokenDef(
        pattern=re.compile(r"."),
        style=(Style.BRIGHT, Back.RED, Fore.BLACK),
    )


@final
class Token(NamedTuple):
    kind: TokenKind
    value: str
    groups: dict[str, str]
    pos: int


_TOKEN_REGEX: Final[re.Pattern[str]] = re.compile(
    "|".join(f"(?P<{k.name}>{k.value.pattern.pattern})" for k in TokenKind),
    re.DOTALL,
)


def tokenize(s: str, /) -> Iterator[Token]:
    pos: int = 0
    m = _TOKEN_REGEX.match(s, pos)
    while m is not None:
        kind: TokenKind = getattr(TokenKind, m.lastgroup)  # type: ignore[arg-type]
        value = m.group()
        yield Token(
            kind,
            value,
            {k: v for k, v in m.groupdict().items() if k.islower() and v is not None},
            pos,
        )
        pos = m.end()
        m = _TOKEN_REGEX.match(s, pos)


def clean(tokens: Iterator[Token], source: str | None = None) -> Iterator[Token]:
    for token in tokens:
        match token.kind:
            case TokenKind.SKIP:
                pass
            case TokenKind.MISMATCH:
                raise GrammarSyntaxError(token.pos, f"unexpected character {token.value!r}", source)
            case _:
                yield token


def render_grammar(path: str | Path, fp: TextIO = sys.stdout, *, render_groups: bool = False) -> None:
    print(Style.BRIGHT, Fore.WHITE, Path(path).name.upper(), Style.RESET_ALL, sep="", file=fp)
    source = Path(path).read_text(encoding="utf8")
    for tok in tokenize(source):
        print(*tok.kind.value.get_style(), tok.value, end=Style.RESET_ALL, sep="", file=fp)
        if render_groups and tok.groups:
            print(Fore.RED, tok.groups, end=Style.RESET_ALL, sep="", file=fp)
    print(file=fp)

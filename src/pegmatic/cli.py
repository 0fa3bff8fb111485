import argparse
import json
import logging
import sys
from pathlib import Path

from colorama import just_fix_windows_console

from .defs import Opts
from .engine import match
from .exc import GrammarError, PegError
from .grammars import BUNDLED, read_grammar
from .reader import parse_grammar
from .result import Failure
from .tokenize import render_grammar

LOGGER = logging.getLogger(__name__)


def _read_grammar_source(grammar: str) -> tuple[str, Path | None]:
    path = Path(grammar)
    if path.exists():
        return path.read_text(encoding="utf8"), path
    if grammar in BUNDLED:
        return read_grammar(grammar), None
    raise FileNotFoundError(f"no such grammar file and no bundled grammar named {grammar!r}")


def _argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pegmatic", description="Match text against a PEG grammar.")
    p.add_argument("grammar", help=f"grammar file, or one of the bundled grammars: {', '.join(BUNDLED)}")
    p.add_argument("file", default="-", nargs="?", help="text file to be matched ('-' to use stdin)")
    p.add_argument("-r", "--rule", help="rule to start with; if omitted, the entrypoint is inferred")
    p.add_argument("--json", action="store_true", help="print the match tree as JSON")
    p.add_argument("--no-cache", action="store_true", help="disable packrat memoization")
    p.add_argument("--tokens", action="store_true", help="print the tokenized grammar and exit")
    p.add_argument("-v", "--verbose", action="store_true", help="show what the matcher is doing")
    return p


def main(argv: list[str] | None = None) -> int:
    args = _argparser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    just_fix_windows_console()

    try:
        source, path = _read_grammar_source(args.grammar)
    except FileNotFoundError as err:
        print(f"pegmatic: {err}", file=sys.stderr)
        return 2
    if args.tokens:
        if path is None:
            print("pegmatic: --tokens needs a grammar file", file=sys.stderr)
            return 2
        render_grammar(path, sys.stdout, render_groups=args.verbose)
        return 0

    try:
        grammar = parse_grammar(source)
    except GrammarError as err:
        print(f"pegmatic: {args.grammar}: {err}", file=sys.stderr)
        return 2

    if args.file == "-":
        text = sys.stdin.read()
    else:
        try:
            text = Path(args.file).read_text(encoding="utf8")
        except OSError as err:
            print(f"pegmatic: {err}", file=sys.stderr)
            return 2

    try:
        outcome = match(grammar, args.rule, text, opts=Opts(use_cache=not args.no_cache))
    except PegError as err:
        print(f"pegmatic: {err}", file=sys.stderr)
        return 2
    if isinstance(outcome, Failure):
        outcome.diagnostic.render(text, sys.stderr)
        return 1
    tree = outcome.unwrap()
    if args.json:
        print(json.dumps(tree.to_json(), indent=2))
    else:
        tree.render(sys.stdout)
    if tree.end != len(text):
        LOGGER.warning("matched %d of %d characters", tree.end, len(text))
    return 0


if __name__ == "__main__":
    sys.exit(main())

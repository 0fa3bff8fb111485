from collections.abc import Iterator, Mapping
from typing import Final, final

from strongly_connected_components import strongly_connected_components

from .exc import UnknownRuleError
from .rules import PrecedenceGroup, Rule, can_be_empty, leftmost_refs, refs, render_rule


@final
class Grammar(Mapping[str, Rule]):
    """
    Immutable mapping from rule names to rules.

    Every rule reference is checked against the defined names on construction,
    so a `Grammar` that exists is always closed.  Dependency analysis (strongly
    connected components, nullability, left recursion) is computed lazily.
    """

    __slots__ = (
        "_rules",
        "_entrypoint",
        "_graph",
        "_sccs",
        "_nullable",
        "_left_recursive",
    )

    def __init__(self, rules: Mapping[str, Rule], entrypoint: str | None = None) -> None:
        self._rules: Final[dict[str, Rule]] = dict(rules)
        if entrypoint is not None and entrypoint not in self._rules:
            raise UnknownRuleError(entrypoint)
        self._entrypoint: Final[str | None] = entrypoint
        graph: dict[str, frozenset[str]] = dict()
        for name, rule in self._rules.items():
            refnames = frozenset(refs(rule))
            for ref in refnames:
                if ref not in self._rules:
                    raise UnknownRuleError(ref, rule=name)
            graph[name] = refnames
        self._graph: Final[dict[str, frozenset[str]]] = graph
        self._sccs: tuple[frozenset[str], ...] | None = None
        self._nullable: frozenset[str] | None = None
        self._left_recursive: frozenset[str] | None = None

    def __getitem__(self, name: str) -> Rule:
        return self._rules[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __str__(self) -> str:
        return "\n".join(render_rule(name, rule) for name, rule in self._rules.items())

    def __repr__(self) -> str:
        return f"Grammar({self._rules!r})"

    @property
    def sccs(self) -> tuple[frozenset[str], ...]:
        """Strongly connected components of the reference graph, dependencies first."""
        if self._sccs is None:
            sccs = [frozenset(scc) for scc in strongly_connected_components(self._graph)]
            covered = frozenset().union(*sccs)
            # rules without any edge are not reported by strongly_connected_components
            isolated = [frozenset({name}) for name in self._rules if name not in covered]
            self._sccs = (*isolated, *sccs)
        return self._sccs

    @property
    def nullable(self) -> frozenset[str]:
        if self._nullable is None:
            nullable: set[str] = set()
            for scc in self.sccs:
                changed = True
                while changed:
                    changed = False
                    for rule in scc:
                        if rule not in nullable and can_be_empty(self._rules[rule], nullable):
                            nullable.add(rule)
                            changed = True
            self._nullable = frozenset(nullable)
        return self._nullable

    def is_nullable(self, name: str) -> bool:
        return name in self.nullable

    @property
    def left_recursive(self) -> frozenset[str]:
        """Rules that can reach themselves without consuming input."""
        if self._left_recursive is None:
            nullable = self.nullable
            leading = {name: frozenset(leftmost_refs(rule, nullable)) for name, rule in self._rules.items()}
            found: set[str] = set()
            for scc in strongly_connected_components(leading):
                if len(scc) > 1:
                    found.update(scc)
                elif (name := next(iter(scc))) in leading[name]:
                    found.add(name)
            self._left_recursive = frozenset(found)
        return self._left_recursive

    @property
    def has_precedence_groups(self) -> bool:
        return any(isinstance(rule, PrecedenceGroup) for rule in self._rules.values())

    @property
    def entrypoint(self) -> str | None:
        """
        The explicitly given entrypoint, or the one inferred from the reference graph:
        the single component no other rule refers to.  Within that component the rule
        defined first wins.
        """
        if self._entrypoint is not None:
            return self._entrypoint
        if not self._rules:
            return None
        if len(self._rules) == 1:
            # trivial
            return next(iter(self._rules))
        component = {name: scc for scc in self.sccs for name in scc}
        referenced = {
            ref for name, refnames in self._graph.items() for ref in refnames if ref not in component[name]
        }
        roots = [scc for scc in self.sccs if not scc & referenced]
        if len(roots) != 1:
            return None
        return next(name for name in self._rules if name in roots[0])

    def reachable(self, start: str) -> frozenset[str]:
        def _all_refs(name: str, visited: set[str]) -> Iterator[str]:
            visited.add(name)
            for ref in self._graph[name]:
                yield ref
                if ref not in visited:
                    yield from _all_refs(ref, visited)

        return frozenset(_all_refs(start, set()))

    @property
    def unreachable(self) -> frozenset[str]:
        if (entrypoint := self.entrypoint) is None:
            return frozenset()
        reachable = self.reachable(entrypoint) | {entrypoint}
        return frozenset(name for name in self._rules if name not in reachable)

    def replace(self, rules: Mapping[str, Rule]) -> "Grammar":
        """A new grammar with `rules` added or substituted; this one is left untouched."""
        return Grammar({**self._rules, **rules}, self._entrypoint)

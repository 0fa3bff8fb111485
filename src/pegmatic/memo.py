from typing import TYPE_CHECKING, Final, NamedTuple, final

if TYPE_CHECKING:
    from .result import MatchResult

type MemoKey = tuple[str, int]


@final
class MemoEntry(NamedTuple):
    end: int | None  # None = failure
    nodes: tuple["MatchResult", ...]


FAILED: Final[MemoEntry] = MemoEntry(None, ())


@final
class MemoTable:
    """
    Packrat cache of rule applications, keyed by rule name and start position.

    One table belongs to exactly one top-level match; it is never shared.  A
    disabled table stores nothing and never hits, which must not change any
    match outcome.
    """

    __slots__ = ("_entries", "_enabled", "hits", "misses")

    def __init__(self, *, enabled: bool = True) -> None:
        self._entries: Final[dict[MemoKey, MemoEntry]] = dict()
        self._enabled: Final[bool] = enabled
        self.hits: int = 0
        self.misses: int = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get(self, key: MemoKey) -> MemoEntry | None:
        if not self._enabled:
            return None
        if (entry := self._entries.get(key)) is None:
            self.misses += 1
        else:
            self.hits += 1
        return entry

    def put(self, key: MemoKey, entry: MemoEntry) -> None:
        if self._enabled:
            self._entries[key] = entry

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

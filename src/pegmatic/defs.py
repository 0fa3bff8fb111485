import dataclasses
from enum import Enum
from typing import NamedTuple, Self, final


@final
class Associativity(Enum):
    LEFT = "left"
    RIGHT = "right"
    NONE = "none"


@final
class Opts(NamedTuple):
    use_cache: bool | None = None
    max_depth: int | None = None
    max_growth: int | None = None

    def __call__(
        self,
        *,
        use_cache: bool | None = None,
        max_depth: int | None = None,
        max_growth: int | None = None,
    ):
        return Opts(
            use_cache=self.use_cache if use_cache is None else use_cache,
            max_depth=self.max_depth if max_depth is None else max_depth,
            max_growth=self.max_growth if max_growth is None else max_growth,
        )


@final
@dataclasses.dataclass(frozen=True)
class _Options:
    use_cache: bool = True
    # nested rule applications
    max_depth: int = 300
    max_growth: int = 10_000

    def override(self, opts: Opts | None) -> Self:
        if opts is None:
            return self
        return _Options(
            use_cache=opts.use_cache if opts.use_cache is not None else self.use_cache,
            max_depth=opts.max_depth if opts.max_depth is not None else self.max_depth,
            max_growth=opts.max_growth if opts.max_growth is not None else self.max_growth,
        )


DEFAULT_OPTIONS = _Options()

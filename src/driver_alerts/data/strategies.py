from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """
    One named way of finding something. `run` returns None when it does not apply.
    Degraded strategies are heuristics whose use should be visible to operators.
    """
    name: str
    run: Callable[..., Optional[T]]
    degraded: bool = False


@dataclass(frozen=True)
class StrategyResult(Generic[T]):
    strategy: Optional[str]
    value: Optional[T]
    degraded: bool = False
    attempts: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.value is not None


def first_success(strategies: Sequence[Strategy[T]], *args: Any, **kwargs: Any) -> StrategyResult[T]:
    """Try strategies in order; the first non-None value wins."""
    attempts: list[str] = []
    for strategy in strategies:
        attempts.append(strategy.name)
        value = strategy.run(*args, **kwargs)
        if value is not None:
            if strategy.degraded:
                logger.debug("fallback strategy used", extra={"strategy": strategy.name, "attempts": attempts})
            return StrategyResult(
                strategy=strategy.name,
                value=value,
                degraded=strategy.degraded,
                attempts=tuple(attempts),
            )
    return StrategyResult(strategy=None, value=None, degraded=False, attempts=tuple(attempts))

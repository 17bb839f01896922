"""Required vs best-effort side effects for a unit of work"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List

logger = logging.getLogger(__name__)


@dataclass
class EffectFailure:
    """A best-effort side effect that did not complete"""

    name: str
    error: str


@dataclass
class EffectLog:
    """
    Collects the secondary effects of one unit of work.

    Required operations are plain calls: they raise and abort the unit.
    Best-effort operations run inside ``best_effort``; a failure is logged as
    a warning and recorded here, and the unit carries on.
    """

    context: Dict[str, Any] = field(default_factory=dict)
    completed: List[str] = field(default_factory=list)
    failures: List[EffectFailure] = field(default_factory=list)

    @contextmanager
    def best_effort(self, name: str) -> Iterator[None]:
        try:
            yield
        except Exception as e:
            self.failures.append(EffectFailure(name=name, error=str(e)))
            logger.warning(
                f"Best-effort step '{name}' failed: {e}",
                extra={**self.context, "effect": name},
            )
        else:
            self.completed.append(name)

    @property
    def ok(self) -> bool:
        return not self.failures

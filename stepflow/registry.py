"""Ordered, immutable registry of step definitions."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .contracts import StepDefinition


class StepRegistry:
    """Lookup helpers over the ordered step list of one workflow."""

    def __init__(self, steps: Iterable[StepDefinition]) -> None:
        self._steps: Tuple[StepDefinition, ...] = tuple(steps)
        self._index: Dict[str, int] = {
            step.id: pos for pos, step in enumerate(self._steps)
        }

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[StepDefinition]:
        return iter(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._index

    @property
    def first(self) -> StepDefinition:
        return self._steps[0]

    @property
    def last(self) -> StepDefinition:
        return self._steps[-1]

    def get(self, step_id: str) -> Optional[StepDefinition]:
        pos = self._index.get(step_id)
        return None if pos is None else self._steps[pos]

    def index_of(self, step_id: str) -> int:
        """Return the position of ``step_id`` or ``-1`` when unknown."""
        return self._index.get(step_id, -1)

    def next_after(self, step_id: str) -> Optional[StepDefinition]:
        pos = self.index_of(step_id)
        if pos == -1 or pos >= len(self._steps) - 1:
            return None
        return self._steps[pos + 1]

    def previous_before(self, step_id: str) -> Optional[StepDefinition]:
        pos = self.index_of(step_id)
        if pos <= 0:
            return None
        return self._steps[pos - 1]

    def span(self, start: int, stop: int) -> Sequence[StepDefinition]:
        """Steps in positions ``[start, stop)``."""
        return self._steps[start:stop]

    def mandatory_ids(self) -> List[str]:
        return [step.id for step in self._steps if not step.can_skip]

    def unknown_ids(self, step_ids: Iterable[str]) -> List[str]:
        """Return the members of ``step_ids`` that are not registered."""
        return [step_id for step_id in step_ids if step_id not in self._index]

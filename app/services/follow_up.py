from __future__ import annotations

import logging
from typing import Callable, List, Tuple

from app.core.metrics import request_metrics

Action = Callable[[], None]


class FollowUpQueue:
    """Best-effort steps that run after a committed transaction.

    Each action runs once, in order. A failure is logged and counted, never
    raised: the transaction they follow has already succeeded.
    """

    def __init__(self, label: str) -> None:
        self._label = label
        self._actions: List[Tuple[str, Action]] = []
        self._logger = logging.getLogger(__name__)

    def add(self, name: str, action: Action) -> None:
        self._actions.append((name, action))

    def __len__(self) -> int:
        return len(self._actions)

    def run(self) -> list[str]:
        failed: list[str] = []
        actions, self._actions = self._actions, []
        for name, action in actions:
            try:
                action()
            except Exception:
                failed.append(name)
                request_metrics.increment(f"follow_up_failed.{name.split(':', 1)[0]}")
                self._logger.exception("FollowUpQueue %s: action %s failed", self._label, name)
        if failed:
            self._logger.warning(
                "FollowUpQueue %s: %s of %s actions failed", self._label, len(failed), len(actions)
            )
        return failed

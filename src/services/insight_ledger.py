"""
Insight Ledger for the Luna guidance engine.

An append/evict log of generated insights plus the list of scheduled
reminders:
- Insights are kept as a bounded most-recent window (oldest evicted first)
  and can be dismissed by id.
- Reminders are never deleted, only flagged completed.

Side effects are confined to the ledger's own collections.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from datetime import datetime

from src.config.guidance import INSIGHT_CAP
from src.models.guidance import (
    Insight,
    InsightDraft,
    Reminder,
    ReminderDraft,
    ReminderType,
    ensure_aware,
    utcnow,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class InsightLedger:
    """Bounded insight window and reminder list.

    Usage:
        ledger = InsightLedger(cap=10)
        insight_id = ledger.add_insight(draft)
        ledger.dismiss(insight_id)
    """

    def __init__(
        self,
        cap: int = INSIGHT_CAP,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._cap = cap
        self._clock = clock
        # Index 0 is the newest insight
        self._insights: deque[Insight] = deque(maxlen=cap)
        self._reminders: list[Reminder] = []

    @property
    def cap(self) -> int:
        return self._cap

    def restore(self, insights: Iterable[Insight], reminders: Iterable[Reminder]) -> None:
        """Replace the ledger contents (used when state is loaded).

        ``insights`` must be newest-first; anything beyond the cap is dropped.
        """
        self._insights = deque(insights, maxlen=self._cap)
        self._reminders = list(reminders)

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------

    def add_insight(self, draft: InsightDraft) -> str:
        """Assign an id and timestamp, prepend, and evict past the cap.

        Returns:
            The new insight's id
        """
        insight = Insight(
            id=new_id(),
            type=draft.type,
            principle=draft.principle,
            title=draft.title,
            description=draft.description,
            priority=draft.priority,
            timestamp=self._clock(),
            action_items=list(draft.action_items),
        )
        if len(self._insights) == self._cap:
            logger.debug("Insight window full, evicting %s", self._insights[-1].id)
        self._insights.appendleft(insight)
        return insight.id

    def dismiss(self, insight_id: str) -> bool:
        """Remove an insight by id. No-op if absent.

        Returns:
            True if an insight was removed
        """
        for insight in self._insights:
            if insight.id == insight_id:
                self._insights.remove(insight)
                return True
        return False

    def recent_insights(self, n: int | None = None) -> list[Insight]:
        """Return up to ``n`` insights, newest first (all when n is None)."""
        items = list(self._insights) if n is None else list(self._insights)[: max(0, n)]
        return copy.deepcopy(items)

    def __len__(self) -> int:
        return len(self._insights)

    # -------------------------------------------------------------------------
    # Reminders
    # -------------------------------------------------------------------------

    def schedule_reminder(self, draft: ReminderDraft) -> str:
        reminder = Reminder(
            id=new_id(),
            type=draft.type,
            title=draft.title,
            description=draft.description,
            scheduled_for=ensure_aware(draft.scheduled_for),
            priority=draft.priority,
        )
        self._reminders.append(reminder)
        return reminder.id

    def complete_reminder(self, reminder_id: str) -> bool:
        """Flag a reminder completed. No-op if absent or already completed.

        Returns:
            True if the flag changed
        """
        for reminder in self._reminders:
            if reminder.id == reminder_id and not reminder.completed:
                reminder.completed = True
                return True
        return False

    def reminders(self) -> list[Reminder]:
        return copy.deepcopy(self._reminders)

    def pending_reminders(self) -> list[Reminder]:
        """Uncompleted reminders ordered by scheduled time."""
        pending = [r for r in self._reminders if not r.completed]
        return copy.deepcopy(sorted(pending, key=lambda r: r.scheduled_for))

    def overdue_reminders(self, now: datetime) -> list[Reminder]:
        return [r for r in self.pending_reminders() if r.scheduled_for < now]

    def has_pending_reminder(self, reminder_type: ReminderType) -> bool:
        return any(
            r.type == reminder_type and not r.completed for r in self._reminders
        )

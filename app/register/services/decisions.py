"""Operator decisions as an explicit request/response rendezvous.

The controller awaits ``ask``; whoever drives the register (the HTTP layer,
a test) reads ``pending`` and resumes it with ``answer`` or ``dismiss``.
Only one question can be outstanding at a time.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Literal

from app.register.core.error_catalog import ConflictError, ErrorCatalog, NotFoundError, RegisterValidationError

Emphasis = Literal["primary", "secondary", "danger"]

CANCELLED = "__cancelled__"


@dataclass(frozen=True)
class DecisionOption:
    label: str
    value: str
    emphasis: Emphasis = "secondary"


@dataclass
class PendingDecision:
    title: str
    message: str
    options: tuple[DecisionOption, ...]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    future: asyncio.Future | None = field(default=None, repr=False)

    def values(self) -> set[str]:
        return {option.value for option in self.options}


class DecisionGateway:
    def __init__(self) -> None:
        self._pending: PendingDecision | None = None
        self._posted: asyncio.Event | None = None

    @property
    def pending(self) -> PendingDecision | None:
        return self._pending

    def _posted_event(self) -> asyncio.Event:
        if self._posted is None:
            self._posted = asyncio.Event()
        return self._posted

    async def ask(self, title: str, message: str, options: Iterable[DecisionOption]) -> str:
        if self._pending is not None:
            raise ConflictError(ErrorCatalog.DECISION_IN_FLIGHT, details={"decision_id": self._pending.id})
        decision = PendingDecision(
            title=title,
            message=message,
            options=tuple(options),
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending = decision
        self._posted_event().set()
        try:
            return await decision.future
        finally:
            self._pending = None

    async def next_question(self) -> PendingDecision:
        posted = self._posted_event()
        await posted.wait()
        posted.clear()
        return self._pending

    def answer(self, decision_id: str, value: str) -> None:
        decision = self._require(decision_id)
        if value not in decision.values():
            raise RegisterValidationError(
                ErrorCatalog.INVALID_DECISION_OPTION,
                details={"value": value, "options": sorted(decision.values())},
            )
        decision.future.set_result(value)

    def dismiss(self, decision_id: str) -> None:
        self._require(decision_id).future.set_result(CANCELLED)

    def _require(self, decision_id: str) -> PendingDecision:
        decision = self._pending
        if decision is None or decision.id != decision_id or decision.future.done():
            raise NotFoundError(ErrorCatalog.DECISION_NOT_FOUND, details={"decision_id": decision_id})
        return decision

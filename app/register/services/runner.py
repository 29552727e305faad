from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass

from app.register.core.error_catalog import ConflictError, ErrorCatalog
from app.register.services.decisions import DecisionGateway, PendingDecision
from app.register.services.register import OperationOutcome


@dataclass(frozen=True)
class OperationStep:
    outcome: OperationOutcome | None = None
    decision: PendingDecision | None = None

    @property
    def status(self) -> str:
        if self.decision is not None:
            return "pending"
        return self.outcome.status


class OperationRunner:
    """Drives one register flow at a time across separate requests.

    ``start`` schedules the flow and returns as soon as it either finishes or
    stops on a question; ``answer``/``dismiss`` resume it the same way. The
    flow itself keeps running on the event loop between those calls.
    """

    def __init__(self, gateway: DecisionGateway):
        self.gateway = gateway
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, operation: Coroutine) -> OperationStep:
        if self.active:
            operation.close()
            raise ConflictError(ErrorCatalog.OPERATION_IN_PROGRESS)
        self._task = asyncio.ensure_future(operation)
        return await self._settle()

    async def answer(self, decision_id: str, value: str) -> OperationStep:
        self._require_active()
        self.gateway.answer(decision_id, value)
        return await self._settle()

    async def dismiss(self, decision_id: str) -> OperationStep:
        self._require_active()
        self.gateway.dismiss(decision_id)
        return await self._settle()

    def _require_active(self) -> None:
        if not self.active:
            raise ConflictError(ErrorCatalog.NO_OPERATION_PENDING)

    async def _settle(self) -> OperationStep:
        task = self._task
        question = asyncio.ensure_future(self.gateway.next_question())
        try:
            await asyncio.wait({task, question}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not question.done():
                question.cancel()
        if task.done():
            self._task = None
            # re-raises whatever the flow failed with
            return OperationStep(outcome=task.result())
        return OperationStep(decision=question.result())

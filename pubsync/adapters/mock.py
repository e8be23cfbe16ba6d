"""
Mock adapter — test double standing in for git or the pub tool.

Returns success for everything by default. Responses can be scripted
per action ID, either as one fixed receipt or as a queue consumed in
call order (the last queued receipt repeats once the queue drains).
"""

from __future__ import annotations

from pubsync.adapters.base import Adapter, ExecutionContext
from pubsync.core.models.action import Receipt


class MockAdapter(Adapter):
    """Scriptable adapter that records every call it receives."""

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, list[Receipt]] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_for(self, action_id: str) -> list[ExecutionContext]:
        """Contexts received for one action ID, in call order."""
        return [c for c in self._call_log if c.action.id == action_id]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, *receipts: Receipt) -> None:
        """Script the receipt(s) returned for an action ID."""
        self._responses[action_id] = list(receipts)

    def set_output(self, action_id: str, output: str) -> None:
        """Succeed for an action ID with the given output."""
        self.set_response(
            action_id,
            Receipt.success(adapter=self._name, action_id=action_id, output=output),
        )

    def set_failure(self, action_id: str, error: str = "Mock failure", output: str = "") -> None:
        """Fail an action ID with the given error and process output."""
        self.set_response(
            action_id,
            Receipt.failure(
                adapter=self._name,
                action_id=action_id,
                error=error,
                output=output,
            ),
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def describe(self, context: ExecutionContext) -> list[str]:
        return [self._name, context.action.id]

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)

        queue = self._responses.get(context.action.id)
        if queue:
            receipt = queue.pop(0) if len(queue) > 1 else queue[0]
            return receipt.model_copy(deep=True)

        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()

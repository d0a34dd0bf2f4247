# offline_sync/Sync/decision_gateway.py
# Description: Suspending gateway that collects a decision for a genuine conflict.
#
"""
decision_gateway.py
-------------------

The gateway is the only place the conflict engine waits on the outside world
besides the transport. Callers await `request_decision(request)` and get back a
validated ConflictAnswer; which presenter answers (a person in a dialog, a fixed
policy, a test script) is decided by the subclass wired into the session.

Every raw answer goes through `parse_conflict_answer`. A malformed answer is
never treated as a skip: the presenter is told what was wrong and asked again.
Only one request is outstanding at a time, and no timeout is applied here.
"""
# Imports
import asyncio
import inspect
from typing import Any, Awaitable, Callable, Iterable, List, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from offline_sync.Constants import VALID_DEFAULT_DECISIONS
from offline_sync.Sync.exceptions import InvalidDecisionError
from offline_sync.Sync.sync_models import ConflictAnswer, ConflictRequest, DecisionChoice, parse_conflict_answer
#
########################################################################################################################
#
# Classes:

class DecisionGateway:
    """Base class for decision presenters."""

    def __init__(self):
        self._outstanding = asyncio.Lock()
        self.invalid_answers = 0

    async def request_decision(self, request: ConflictRequest) -> ConflictAnswer:
        async with self._outstanding:
            while True:
                raw_answer = await self._ask(request)
                try:
                    answer = parse_conflict_answer(raw_answer)
                except InvalidDecisionError as e:
                    self.invalid_answers += 1
                    logger.warning(f"Rejected decision for record '{request.record_id}': {e}. Asking again.")
                    await self.on_invalid_answer(request, e)
                    continue
                logger.debug(f"Decision for record '{request.record_id}': {answer.choice.value}")
                return answer

    async def _ask(self, request: ConflictRequest) -> Any:
        raise NotImplementedError

    async def on_invalid_answer(self, request: ConflictRequest, error: InvalidDecisionError) -> None:
        """Hook for presenters that want to show the validation error before re-asking."""
        return None


class ScriptedDecisionGateway(DecisionGateway):
    """Replays a fixed sequence of raw answers. Every request is kept in `requests`."""

    def __init__(self, answers: Iterable[Any] = ()):
        super().__init__()
        self._answers: List[Any] = list(answers)
        self.requests: List[ConflictRequest] = []

    def queue_answer(self, answer: Any) -> None:
        self._answers.append(answer)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def _ask(self, request: ConflictRequest) -> Any:
        self.requests.append(request)
        if not self._answers:
            raise LookupError(f"No scripted answer left for record '{request.record_id}'.")
        return self._answers.pop(0)


class DefaultDecisionGateway(DecisionGateway):
    """Answers every conflict with the same configured choice."""

    def __init__(self, choice: Union[str, DecisionChoice] = DecisionChoice.SERVER):
        super().__init__()
        choice_value = choice.value if isinstance(choice, DecisionChoice) else str(choice).lower()
        if choice_value not in VALID_DEFAULT_DECISIONS:
            raise ValueError(f"Default decision must be one of {VALID_DEFAULT_DECISIONS}, got '{choice}'.")
        self.choice = DecisionChoice(choice_value)

    async def _ask(self, request: ConflictRequest) -> Any:
        return ConflictAnswer(choice=self.choice)


class CallbackDecisionGateway(DecisionGateway):
    """Delegates to a plain or async callable taking the ConflictRequest."""

    def __init__(self, callback: Callable[[ConflictRequest], Union[Any, Awaitable[Any]]]):
        super().__init__()
        self._callback = callback

    async def _ask(self, request: ConflictRequest) -> Any:
        result = self._callback(request)
        if inspect.isawaitable(result):
            result = await result
        return result

#
# End of offline_sync/Sync/decision_gateway.py
########################################################################################################################

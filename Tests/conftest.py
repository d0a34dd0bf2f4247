# Tests/conftest.py
#
# Shared fixtures: an in-memory queue store, a scripted transport and gateway,
# and a session/orchestrator wired from them.
#
# Imports
import uuid
from typing import Any, List, Optional, Sequence
#
# Third-Party Imports
import pytest
#
# Local Imports
from offline_sync.DB.Pending_Queue_DB import PendingQueueDB
from offline_sync.Sync.decision_gateway import ScriptedDecisionGateway
from offline_sync.Sync.Sync_Orchestrator import SyncOrchestrator
from offline_sync.Sync.sync_models import (
    OperationKind, PendingOperation, PullQuery, PushFailure, PushReport, PushStatus, Record,
)
from offline_sync.Sync.sync_session import SyncSession
#
#######################################################################################################################
#
# --- Helpers ---

def make_record(record_id: str, version: Optional[str] = None, deleted: bool = False, **fields: Any) -> Record:
    return Record.model_validate({**fields, "id": record_id, "version": version, "deleted": deleted})


def make_failure(kind: OperationKind, status: PushStatus, local: Record,
                 remote: Optional[Record] = None) -> PushFailure:
    return PushFailure(kind=kind, local_record=local, remote_record=remote, status=status)


class FakeTransport:
    """
    Transport double. Each push/pull consumes the next scripted outcome: a value to
    return, an exception to raise, or a callable taking the operations (or query).
    """

    def __init__(self):
        self.push_outcomes: List[Any] = []
        self.pull_outcomes: List[Any] = []
        self.pushed_batches: List[List[PendingOperation]] = []
        self.pull_queries: List[Optional[PullQuery]] = []
        self.open_calls = 0
        self.close_calls = 0

    async def open(self) -> None:
        self.open_calls += 1

    async def close(self) -> None:
        self.close_calls += 1

    async def push(self, operations: Sequence[PendingOperation]) -> PushReport:
        self.pushed_batches.append(list(operations))
        outcome = self.push_outcomes.pop(0) if self.push_outcomes else PushReport()
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(operations)
        return outcome

    async def pull(self, query: Optional[PullQuery] = None) -> List[Record]:
        self.pull_queries.append(query)
        outcome = self.pull_outcomes.pop(0) if self.pull_outcomes else []
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(query)
        return outcome

    def fail_all(self, status: PushStatus, remote_by_id: Optional[dict] = None) -> None:
        """Scripts the next push to reject every operation with `status`."""
        remote_by_id = remote_by_id or {}

        def _reject(operations):
            return PushReport(failures=[
                PushFailure(kind=op.kind, local_record=op.record, remote_record=remote_by_id.get(op.record_id),
                            status=status, position=op.position)
                for op in operations
            ])

        self.push_outcomes.append(_reject)


# --- Fixtures ---

@pytest.fixture
def queue_db():
    db = PendingQueueDB(db_path=":memory:", client_id=f"test_client_{uuid.uuid4().hex[:8]}")
    yield db
    db.close_connection()


@pytest.fixture
def file_queue_db(tmp_path):
    db = PendingQueueDB(db_path=tmp_path / "queue.db", client_id="test_client_file")
    yield db
    db.close_connection()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def scripted_gateway():
    return ScriptedDecisionGateway()


@pytest.fixture
def session(fake_transport, queue_db, scripted_gateway):
    return SyncSession(transport=fake_transport, store=queue_db, gateway=scripted_gateway, table="todoitem")


@pytest.fixture
def reported_messages():
    return []


@pytest.fixture
def orchestrator(session, reported_messages):
    return SyncOrchestrator(session, reporter=reported_messages.append)

#
# End of conftest.py
#######################################################################################################################

# offline_sync/Sync/interfaces.py
# Description: Structural interfaces the orchestrator depends on.
#
# Imports
from typing import ContextManager, Iterable, List, Optional, Protocol, Sequence, runtime_checkable
#
# Local Imports
from offline_sync.Sync.sync_models import PendingOperation, PullQuery, PushReport, Record
#
########################################################################################################################
#
# Classes:

@runtime_checkable
class Transport(Protocol):
    """Remote side of a sync cycle. Implemented by `sync_api.client.SyncAPIClient`."""

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def push(self, operations: Sequence[PendingOperation]) -> PushReport: ...

    async def pull(self, query: Optional[PullQuery] = None) -> List[Record]: ...


@runtime_checkable
class QueueStore(Protocol):
    """Local side of a sync cycle. Implemented by `DB.Pending_Queue_DB.PendingQueueDB`."""

    def enumerate_pending(self) -> List[PendingOperation]: ...

    def remove(self, record_id: str) -> bool: ...

    def replace(self, record_id: str, operation: PendingOperation) -> PendingOperation: ...

    def upsert_remote_record(self, record: Record) -> None: ...

    def purge_record(self, record_id: str) -> None: ...

    def transaction(self) -> ContextManager: ...

    def accept_pushed(self, operation: PendingOperation, server_record: Record) -> None: ...

    def merge_pulled(self, records: Iterable[Record]) -> int: ...

    def close_connection(self) -> None: ...

#
# End of offline_sync/Sync/interfaces.py
########################################################################################################################

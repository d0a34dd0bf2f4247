# offline_sync/Sync/sync_session.py
# Description: Owns the transport, the local store and the decision gateway for one table.
#
# Imports
import asyncio
from typing import Any, Dict, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from offline_sync.config import get_queue_db_path, get_setting
from offline_sync.Constants import (
    DEFAULT_CLIENT_ID, DEFAULT_DECISION, DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_SERVER_URL, DEFAULT_TABLE_NAME,
)
from offline_sync.Sync.decision_gateway import DecisionGateway, DefaultDecisionGateway
from offline_sync.Sync.interfaces import QueueStore, Transport
#
########################################################################################################################
#
# Classes:

class SyncSession:
    """
    Everything one sync context needs, created once and passed around explicitly.

    `initialize()` may be called any number of times and from concurrent tasks; the
    transport is opened exactly once.
    """

    def __init__(self, transport: Transport, store: QueueStore, gateway: DecisionGateway,
                 table: str = DEFAULT_TABLE_NAME):
        self.transport = transport
        self.store = store
        self.gateway = gateway
        self.table = table
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            await self.transport.open()
            self._initialized = True
            logger.info(f"Sync session for table '{self.table}' initialized.")

    async def close(self) -> None:
        async with self._init_lock:
            if self._initialized:
                await self.transport.close()
            self.store.close_connection()
            self._initialized = False
            logger.info(f"Sync session for table '{self.table}' closed.")

    async def __aenter__(self) -> "SyncSession":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], gateway: Optional[DecisionGateway] = None) -> "SyncSession":
        """
        Builds the HTTP transport and SQLite store described by `settings`.

        Without an explicit gateway, conflicts are answered by `[sync] default_decision`.
        """
        # Local imports: both modules import Sync.sync_models, which imports this package.
        from offline_sync.DB.Pending_Queue_DB import PendingQueueDB
        from offline_sync.sync_api.client import SyncAPIClient

        table = get_setting(settings, "sync", "table", DEFAULT_TABLE_NAME)
        transport = SyncAPIClient(
            base_url=get_setting(settings, "sync", "server_url", DEFAULT_SERVER_URL),
            table=table,
            timeout=get_setting(settings, "sync", "request_timeout", DEFAULT_HTTP_TIMEOUT_SECONDS, float),
        )
        store = PendingQueueDB(
            db_path=get_queue_db_path(settings),
            client_id=get_setting(settings, "general", "client_id", DEFAULT_CLIENT_ID),
        )
        if gateway is None:
            gateway = DefaultDecisionGateway(get_setting(settings, "sync", "default_decision", DEFAULT_DECISION))
        return cls(transport=transport, store=store, gateway=gateway, table=table)

#
# End of offline_sync/Sync/sync_session.py
########################################################################################################################

# offline_sync/sync_api/client.py
#
#
# Imports
import json
from typing import Any, Dict, List, Optional, Sequence
#
# 3rd-party Libraries
import httpx
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from offline_sync.Constants import DEFAULT_HTTP_TIMEOUT_SECONDS
from offline_sync.Metrics.metrics_logger import timeit
from offline_sync.Sync.sync_models import (
    OperationKind, PendingOperation, PullQuery, PushedOperation, PushFailure, PushReport, PushStatus, Record,
)
from .exceptions import TransportConnectionError, TransportRequestError, TransportResponseError
from .schemas import ConflictBody, TablePage
from .utils import build_filter_expression, etag_to_version, normalize_status, record_from_wire, record_to_wire, \
    response_detail, version_to_etag
#
########################################################################################################################
#
# Functions:

class SyncAPIClient:
    """
    Pushes pending operations to, and pulls records from, a versioned REST table API.

    Writes use optimistic concurrency: updates and deletes send the record's version
    in `If-Match`. Writes rejected with 404, 409 or 412 come back as PushFailures with a
    normalized status; an unreachable server or any other error status raises.
    """

    def __init__(self, base_url: str, table: str, timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.table = table
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def table_path(self) -> str:
        return f"/tables/{self.table}"

    def _record_path(self, record_id: str) -> str:
        return f"{self.table_path}/{record_id}"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def open(self):
        await self._get_client()

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.request(method, path, **kwargs)
        except httpx.RequestError as e:  # Covers ConnectError, TimeoutException, etc.
            raise TransportConnectionError(f"Connection error to {self.base_url}{path}: {e}") from e

    # --- Push ---

    @timeit("sync_api_push_duration_seconds", log_call_count=True)
    async def push(self, operations: Sequence[PendingOperation]) -> PushReport:
        """
        Sends every operation in order and collects what the server accepted and rejected.

        Raises:
            TransportConnectionError: if the server cannot be reached.
            TransportResponseError: for an error status other than 404/409/412.
            In both cases nothing is reported for the operations already sent in this
            batch; they stay queued and settle as conflicts on the next push.
        """
        report = PushReport()
        for operation in operations:
            response = await self._send_operation(operation)
            if response.is_success:
                report.pushed.append(PushedOperation(operation=operation,
                                                     server_record=self._accepted_record(operation, response)))
                continue

            status = normalize_status(response.status_code)
            if status == PushStatus.TRANSPORT_ERROR:
                # Not a conflict: the write never applied, so the whole push is abandoned.
                raise TransportResponseError(response.status_code, response_detail(response))
            logger.debug(f"Push of {operation.kind.value} for record '{operation.record_id}' rejected: "
                         f"{response.status_code} ({status.value}) - {response_detail(response)}")
            remote_record = await self._remote_copy(operation, response, status)
            report.failures.append(PushFailure(
                kind=operation.kind,
                local_record=operation.record,
                remote_record=remote_record,
                status=status,
                position=operation.position,
            ))
        logger.info(f"Pushed {len(operations)} operation(s) to {self.table_path}: "
                    f"{len(report.pushed)} accepted, {len(report.failures)} rejected.")
        return report

    async def _send_operation(self, operation: PendingOperation) -> httpx.Response:
        record = operation.record
        headers = {}
        if record.version and operation.kind != OperationKind.INSERT:
            headers["If-Match"] = version_to_etag(record.version)

        if operation.kind == OperationKind.INSERT:
            return await self._send("POST", self.table_path, json=record_to_wire(record))
        if operation.kind == OperationKind.UPDATE:
            return await self._send("PATCH", self._record_path(record.id), json=record_to_wire(record), headers=headers)
        if operation.kind == OperationKind.DELETE:
            return await self._send("DELETE", self._record_path(record.id), headers=headers)
        raise TransportRequestError(f"Cannot push operation of kind {operation.kind!r}")

    def _accepted_record(self, operation: PendingOperation, response: httpx.Response) -> Record:
        if operation.kind == OperationKind.DELETE:
            return operation.record.with_fields(deleted=True)
        data = self._json_or_none(response)
        if isinstance(data, dict) and data.get("id") == operation.record_id:
            return record_from_wire(data, response.headers.get("ETag"))
        # No body: keep the local snapshot, stamped with the ETag if the server sent one.
        etag_version = etag_to_version(response.headers.get("ETag"))
        return operation.record.with_fields(version=etag_version) if etag_version else operation.record

    async def _remote_copy(self, operation: PendingOperation, response: httpx.Response,
                           status: PushStatus) -> Optional[Record]:
        """The server's current copy of the record, from the error body or a follow-up read."""
        data = self._json_or_none(response)
        if isinstance(data, dict):
            if data.get("id") == operation.record_id:
                return record_from_wire(data, response.headers.get("ETag"))
            try:
                body = ConflictBody.model_validate(data)
            except ValidationError:
                body = None
            if body is not None and body.record and body.record.get("id") == operation.record_id:
                return record_from_wire(body.record, response.headers.get("ETag"))

        if status == PushStatus.NOT_FOUND and operation.kind == OperationKind.UPDATE:
            return None
        return await self.get_record(operation.record_id)

    async def get_record(self, record_id: str) -> Optional[Record]:
        """Reads one record, tombstones included. Returns None when the server has no such row."""
        response = await self._send("GET", self._record_path(record_id), params={"__includeDeleted": "true"})
        if response.status_code == 404:
            return None
        if not response.is_success:
            logger.warning(f"Could not fetch remote copy of record '{record_id}': "
                           f"{response.status_code} - {response_detail(response)}")
            return None
        data = self._json_or_none(response)
        if not isinstance(data, dict):
            return None
        return record_from_wire(data, response.headers.get("ETag"))

    # --- Pull ---

    @timeit("sync_api_pull_duration_seconds")
    async def pull(self, query: Optional[PullQuery] = None) -> List[Record]:
        """
        Reads every remote record matching `query`, page by page.

        Raises:
            TransportConnectionError: if the server cannot be reached.
            TransportResponseError: for non-2xx responses or undecodable bodies.
        """
        query = query or PullQuery()
        params: Dict[str, Any] = {"$top": query.page_size}
        filter_expression = build_filter_expression(query.filters)
        if filter_expression:
            params["$filter"] = filter_expression
        if query.include_deleted:
            params["__includeDeleted"] = "true"

        records: List[Record] = []
        skip = 0
        while True:
            response = await self._send("GET", self.table_path, params={**params, "$skip": skip})
            if not response.is_success:
                raise TransportResponseError(response.status_code, response_detail(response))
            try:
                data = response.json()
            except json.JSONDecodeError:
                raise TransportResponseError(response.status_code, "Failed to decode JSON response",
                                             response_data={"raw_text": response.text})
            page = TablePage(results=data) if isinstance(data, list) else TablePage.model_validate(data)
            records.extend(record_from_wire(row) for row in page.results)
            if len(page.results) < query.page_size:
                break
            skip += len(page.results)

        logger.info(f"Pulled {len(records)} record(s) from {self.table_path}.")
        return records

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

#
# End of client.py
########################################################################################################################

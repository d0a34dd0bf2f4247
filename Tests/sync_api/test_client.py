# test_client.py
#
# Tests for the table API client, with httpx.MockTransport standing in for the server.
#
# Imports
import json
#
# Third-Party Imports
import httpx
import pytest
#
# Local Imports
from conftest import make_record
from offline_sync.sync_api import (
    SyncAPIClient, TransportConnectionError, TransportResponseError, build_filter_expression, normalize_status,
)
from offline_sync.sync_api.utils import etag_to_version, record_from_wire, record_to_wire
from offline_sync.Sync.sync_models import OperationKind, PendingOperation, PullQuery, PushStatus
#
#######################################################################################################################
#
# Tests

pytestmark = pytest.mark.asyncio

BASE_URL = "http://sync.test"


def make_client(handler, requests_seen=None):
    def _record(request: httpx.Request) -> httpx.Response:
        if requests_seen is not None:
            requests_seen.append(request)
        return handler(request)

    return SyncAPIClient(BASE_URL, "todoitem", transport=httpx.MockTransport(_record))


def op(kind, record_id="A", version="v1", **fields):
    return PendingOperation(kind=kind, record=make_record(record_id, version=version, **fields), position=1)


# --- Push ---

async def test_accepted_insert_returns_server_copy():
    seen = []

    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(201, json={**body, "version": "srv1", "createdAt": "2024-01-01"})

    client = make_client(handler, seen)
    report = await client.push([op(OperationKind.INSERT, version=None, text="foo")])
    await client.close()

    assert report.failures == []
    assert report.pushed[0].server_record == make_record("A", version="srv1", text="foo")
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/tables/todoitem"
    assert "If-Match" not in seen[0].headers
    assert "version" not in json.loads(seen[0].content)


async def test_update_sends_if_match_and_uses_etag():
    seen = []

    def handler(request):
        return httpx.Response(204, headers={"ETag": 'W/"v2"'})

    client = make_client(handler, seen)
    report = await client.push([op(OperationKind.UPDATE, text="bar")])
    await client.close()

    assert seen[0].method == "PATCH"
    assert seen[0].url.path == "/tables/todoitem/A"
    assert seen[0].headers["If-Match"] == '"v1"'
    assert report.pushed[0].server_record.version == "v2"


async def test_accepted_delete_is_a_tombstone():
    client = make_client(lambda request: httpx.Response(204))
    report = await client.push([op(OperationKind.DELETE, text="foo")])
    await client.close()

    assert report.pushed[0].server_record.deleted is True


async def test_conflict_body_with_record_becomes_remote_copy():
    def handler(request):
        return httpx.Response(409, json={"id": "A", "version": "v2", "text": "server"})

    client = make_client(handler)
    report = await client.push([op(OperationKind.UPDATE, text="local")])
    await client.close()

    failure = report.failures[0]
    assert failure.status == PushStatus.VERSION_CONFLICT
    assert failure.remote_record == make_record("A", version="v2", text="server")
    assert failure.local_record.text == "local"
    assert failure.position == 1


async def test_wrapped_conflict_body_is_unwrapped():
    def handler(request):
        return httpx.Response(412, json={"error": "precondition", "record": {"id": "A", "version": "v3", "deleted": True}})

    client = make_client(handler)
    report = await client.push([op(OperationKind.DELETE)])
    await client.close()

    failure = report.failures[0]
    assert failure.status == PushStatus.PRECONDITION_FAILED
    assert failure.remote_record.deleted is True


async def test_conflict_without_body_fetches_remote_copy():
    seen = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json={"id": "A", "text": "server"}, headers={"ETag": '"v5"'})
        return httpx.Response(412)

    client = make_client(handler, seen)
    report = await client.push([op(OperationKind.UPDATE, text="local")])
    await client.close()

    assert [request.method for request in seen] == ["PATCH", "GET"]
    assert seen[1].url.params["__includeDeleted"] == "true"
    assert report.failures[0].remote_record == make_record("A", version="v5", text="server")


async def test_fetch_of_missing_remote_copy_gives_none():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(404)
        return httpx.Response(409)

    client = make_client(handler)
    report = await client.push([op(OperationKind.UPDATE)])
    await client.close()

    assert report.failures[0].remote_record is None


async def test_update_not_found_does_not_fetch():
    seen = []
    client = make_client(lambda request: httpx.Response(404), seen)
    report = await client.push([op(OperationKind.UPDATE)])
    await client.close()

    assert len(seen) == 1
    assert report.failures[0].status == PushStatus.NOT_FOUND
    assert report.failures[0].remote_record is None


@pytest.mark.parametrize("status_code", [400, 401, 500, 503])
async def test_non_conflict_error_status_aborts_push(status_code):
    seen = []
    client = make_client(lambda request: httpx.Response(status_code, json={"detail": "boom"}), seen)
    with pytest.raises(TransportResponseError) as exc_info:
        await client.push([op(OperationKind.INSERT, version=None), op(OperationKind.UPDATE, "B")])
    await client.close()

    assert len(seen) == 1
    assert exc_info.value.status_code == status_code
    assert "boom" in str(exc_info.value)


async def test_mixed_batch_keeps_order():
    def handler(request):
        if request.url.path.endswith("/B"):
            return httpx.Response(409, json={"id": "B", "version": "v9"})
        return httpx.Response(200, json={"id": "A", "version": "v2"})

    client = make_client(handler)
    report = await client.push([op(OperationKind.UPDATE, "A"), op(OperationKind.UPDATE, "B")])
    await client.close()

    assert [p.operation.record_id for p in report.pushed] == ["A"]
    assert [f.record_id for f in report.failures] == ["B"]


async def test_unreachable_server_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(TransportConnectionError):
        await client.push([op(OperationKind.INSERT)])
    await client.close()


# --- Pull ---

async def test_pull_pages_until_short_page():
    seen = []
    rows = [{"id": str(i), "version": "1"} for i in range(5)]

    def handler(request):
        skip = int(request.url.params["$skip"])
        top = int(request.url.params["$top"])
        return httpx.Response(200, json=rows[skip:skip + top])

    client = make_client(handler, seen)
    records = await client.pull(PullQuery(page_size=2))
    await client.close()

    assert [r.id for r in records] == ["0", "1", "2", "3", "4"]
    assert [request.url.params["$skip"] for request in seen] == ["0", "2", "4"]


async def test_pull_sends_filter_and_accepts_envelope():
    seen = []

    def handler(request):
        return httpx.Response(200, json={"results": [{"id": "A", "complete": False, "updatedAt": "x"}], "count": 1})

    client = make_client(handler, seen)
    records = await client.pull(PullQuery(filters={"complete": False}, include_deleted=False))
    await client.close()

    assert records == [make_record("A", complete=False)]
    assert seen[0].url.params["$filter"] == "complete eq false"
    assert "__includeDeleted" not in seen[0].url.params


async def test_pull_error_status_raises():
    client = make_client(lambda request: httpx.Response(503, json={"detail": "maintenance"}))
    with pytest.raises(TransportResponseError) as exc_info:
        await client.pull()
    await client.close()

    assert exc_info.value.status_code == 503
    assert "maintenance" in str(exc_info.value)


async def test_pull_undecodable_body_raises():
    client = make_client(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(TransportResponseError):
        await client.pull()
    await client.close()


async def test_close_then_reuse_reopens_client():
    client = make_client(lambda request: httpx.Response(200, json=[]))
    await client.open()
    await client.close()
    assert await client.pull() == []
    await client.close()


# --- Helpers ---

@pytest.mark.parametrize("status_code,expected", [
    (404, PushStatus.NOT_FOUND),
    (409, PushStatus.VERSION_CONFLICT),
    (412, PushStatus.PRECONDITION_FAILED),
    (400, PushStatus.TRANSPORT_ERROR),
    (500, PushStatus.TRANSPORT_ERROR),
])
async def test_normalize_status(status_code, expected):
    assert normalize_status(status_code) == expected


@pytest.mark.parametrize("etag,expected", [('"abc"', "abc"), ('W/"abc"', "abc"), ("", None), (None, None)])
async def test_etag_to_version(etag, expected):
    assert etag_to_version(etag) == expected


async def test_build_filter_expression():
    assert build_filter_expression({}) is None
    assert build_filter_expression({"text": "it's", "complete": True, "n": 3, "owner": None}) == (
        "complete eq true and n eq 3 and owner eq null and text eq 'it''s'"
    )


async def test_wire_conversion_drops_metadata_and_version():
    record = record_from_wire({"id": "A", "text": "foo", "updated_at": "now"}, etag='"7"')
    assert record == make_record("A", version="7", text="foo")
    assert record_to_wire(record) == {"id": "A", "deleted": False, "text": "foo"}

#
# End of test_client.py
#######################################################################################################################

# offline_sync/sync_api/utils.py
#
#
# Imports
from typing import Any, Dict, Optional
#
# 3rd-party Libraries
import httpx
#
# Local Imports
from offline_sync.Constants import (
    HTTP_CONFLICT, HTTP_NOT_FOUND, HTTP_PRECONDITION_FAILED, SERVER_METADATA_FIELDS,
)
from offline_sync.Sync.sync_models import PushStatus, Record
#
#######################################################################################################################
#
# Functions:

def normalize_status(status_code: int) -> PushStatus:
    """Maps a provider status code onto the fixed push-status vocabulary."""
    if status_code == HTTP_NOT_FOUND:
        return PushStatus.NOT_FOUND
    if status_code == HTTP_CONFLICT:
        return PushStatus.VERSION_CONFLICT
    if status_code == HTTP_PRECONDITION_FAILED:
        return PushStatus.PRECONDITION_FAILED
    return PushStatus.TRANSPORT_ERROR


def etag_to_version(etag: Optional[str]) -> Optional[str]:
    if not etag:
        return None
    etag = etag.strip()
    if etag.startswith("W/"):
        etag = etag[2:]
    return etag.strip('"') or None


def version_to_etag(version: str) -> str:
    return f'"{version}"'


def record_from_wire(data: Dict[str, Any], etag: Optional[str] = None) -> Record:
    """
    Builds a Record from a JSON row, dropping backend system columns.

    The version comes from the body when present, else from the ETag header.
    """
    fields = {k: v for k, v in data.items() if k not in SERVER_METADATA_FIELDS}
    if fields.get("version") is None and etag:
        fields["version"] = etag_to_version(etag)
    return Record.model_validate(fields)


def record_to_wire(record: Record) -> Dict[str, Any]:
    """JSON body for insert/update requests. The version travels in If-Match, not in the body."""
    return record.model_dump(exclude={"version"})


def format_filter_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def build_filter_expression(filters: Dict[str, Any]) -> Optional[str]:
    """Turns {'complete': False, 'text': 'a'} into "complete eq false and text eq 'a'"."""
    if not filters:
        return None
    return " and ".join(f"{field} eq {format_filter_value(value)}" for field, value in sorted(filters.items()))


def response_detail(response: httpx.Response) -> str:
    """Best-effort human readable error detail from a failed response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        for key in ("detail", "error", "message"):
            if isinstance(data.get(key), str):
                return data[key]
    return response.text or response.reason_phrase

#
# End of offline_sync/sync_api/utils.py
#######################################################################################################################

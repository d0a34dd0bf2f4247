# offline_sync/Sync/sync_models.py
# Description: Typed models shared by the conflict engine, the local store and the transport.
#
# Imports
import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
#
# 3rd-party Libraries
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
#
# Local Imports
from offline_sync.Constants import DEFAULT_PULL_PAGE_SIZE, RESERVED_RECORD_FIELDS, RECORD_ID_FIELD, RECORD_VERSION_FIELD
from offline_sync.Sync.exceptions import InvalidDecisionError
#
########################################################################################################################
#
# Classes:

class OperationKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class PushStatus(str, Enum):
    NOT_FOUND = "not_found"
    VERSION_CONFLICT = "version_conflict"
    PRECONDITION_FAILED = "precondition_failed"
    TRANSPORT_ERROR = "transport_error"


class SyncState(str, Enum):
    IDLE = "idle"
    PUSHING = "pushing"
    RESOLVING_CONFLICTS = "resolving_conflicts"
    PULLING = "pulling"


class DecisionChoice(str, Enum):
    SERVER = "server"
    CLIENT = "client"
    SKIP = "skip"
    CUSTOM = "custom"


# --- Records and queue entries ---

class Record(BaseModel):
    """
    An identified domain entity.

    `id`, `version` and `deleted` belong to the sync layer; every other field is
    domain payload and is carried as a pydantic extra.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    version: Optional[str] = None
    deleted: bool = False

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value):
        # Version tokens are opaque; some backends send them as numbers.
        if value is None:
            return None
        return str(value)

    def payload(self) -> Dict[str, Any]:
        """Returns the mutable payload fields only."""
        return {k: v for k, v in self.model_dump().items() if k not in RESERVED_RECORD_FIELDS}

    def with_fields(self, **changes: Any) -> "Record":
        """Returns a validated copy of this record with `changes` applied."""
        return Record.model_validate({**self.model_dump(), **changes})

    def same_payload_as(self, other: "Record") -> bool:
        mine, theirs = self.payload(), other.payload()
        return all(mine.get(key) == theirs.get(key) for key in set(mine) | set(theirs))


class PendingOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    record: Record
    position: Optional[int] = None  # assigned by the queue store, FIFO

    @property
    def record_id(self) -> str:
        return self.record.id


class PushFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    local_record: Record
    remote_record: Optional[Record] = None
    status: PushStatus
    position: Optional[int] = None

    @property
    def record_id(self) -> str:
        return self.local_record.id


class PushedOperation(BaseModel):
    """A pending operation the server accepted, with the server's copy of the record."""
    model_config = ConfigDict(frozen=True)

    operation: PendingOperation
    server_record: Record


class PushReport(BaseModel):
    """What the transport hands back after pushing a batch of pending operations."""
    failures: List[PushFailure] = Field(default_factory=list)
    pushed: List[PushedOperation] = Field(default_factory=list)


class PullQuery(BaseModel):
    filters: Dict[str, Any] = Field(default_factory=dict)
    include_deleted: bool = True
    page_size: int = Field(default=DEFAULT_PULL_PAGE_SIZE, gt=0)


# --- Resolutions ---

class BaseResolution(BaseModel):
    model_config = ConfigDict(frozen=True)


class Discard(BaseResolution):
    """Drop the pending operation. `keep_pending` leaves it queued for a later cycle instead."""
    kind: Literal["discard"] = "discard"
    keep_pending: bool = False


class DiscardAndAdopt(BaseResolution):
    kind: Literal["discard_and_adopt"] = "discard_and_adopt"
    remote_record: Record


class Reapply(BaseResolution):
    kind: Literal["reapply"] = "reapply"
    record: Record


class ChangeKind(BaseResolution):
    kind: Literal["change_kind"] = "change_kind"
    new_kind: OperationKind
    record: Record


class Fail(BaseResolution):
    kind: Literal["fail"] = "fail"
    reason: str
    fatal: bool = False


Resolution = Union[Discard, DiscardAndAdopt, Reapply, ChangeKind, Fail]


# --- External decisions ---

class ConflictRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    record_id: str
    candidate: Dict[str, Any]
    remote_candidate: Optional[Dict[str, Any]] = None


class ConflictAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    choice: DecisionChoice
    record: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _custom_needs_record(self):
        if self.choice == DecisionChoice.CUSTOM and self.record is None:
            raise ValueError("A custom answer must carry a record.")
        if self.choice != DecisionChoice.CUSTOM and self.record is not None:
            raise ValueError(f"A '{self.choice.value}' answer cannot carry a record.")
        return self

    @classmethod
    def use_server(cls) -> "ConflictAnswer":
        return cls(choice=DecisionChoice.SERVER)

    @classmethod
    def use_client(cls) -> "ConflictAnswer":
        return cls(choice=DecisionChoice.CLIENT)

    @classmethod
    def skip(cls) -> "ConflictAnswer":
        return cls(choice=DecisionChoice.SKIP)

    @classmethod
    def custom(cls, record: Dict[str, Any]) -> "ConflictAnswer":
        return cls(choice=DecisionChoice.CUSTOM, record=record)


class NeedsDecision(BaseModel):
    """Returned by a policy when only an external decision can settle the conflict."""
    model_config = ConfigDict(frozen=True)

    request: ConflictRequest
    failure: PushFailure


class ResolvedConflict(BaseModel):
    record_id: str
    operation: OperationKind
    status: PushStatus
    resolution: Resolution = Field(discriminator="kind")


class SyncSummary(BaseModel):
    pushed: int = 0
    conflicts: int = 0
    resolved: int = 0
    deferred: int = 0
    failed: int = 0
    pulled: int = 0
    resolutions: List[ResolvedConflict] = Field(default_factory=list)


def _is_answer_shape(data: Dict[str, Any]) -> bool:
    """True for {"choice": ..., "record": ...} dicts naming a known choice."""
    choices = {choice.value for choice in DecisionChoice}
    return set(data) <= {"choice", "record"} and data.get("choice") in choices


def parse_conflict_answer(raw: Any) -> ConflictAnswer:
    """
    Validates a raw answer coming back from a decision presenter.

    Accepts a ConflictAnswer, one of the strings "server"/"client"/"skip", a dict
    shaped like a ConflictAnswer (`{"choice": "server"}`), a dict holding a custom
    record, or a JSON string of either dict.

    Raises:
        InvalidDecisionError: if the answer cannot be turned into a ConflictAnswer.
    """
    if isinstance(raw, ConflictAnswer):
        answer = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if text.lower() in (DecisionChoice.SERVER.value, DecisionChoice.CLIENT.value, DecisionChoice.SKIP.value):
            return ConflictAnswer(choice=DecisionChoice(text.lower()))
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidDecisionError(f"Invalid conflict resolution: {e}", raw_answer=raw) from e
        return parse_conflict_answer(decoded)
    elif isinstance(raw, dict) and _is_answer_shape(raw):
        try:
            answer = ConflictAnswer.model_validate(raw)
        except ValidationError as e:
            raise InvalidDecisionError(f"Invalid conflict resolution: {e}", raw_answer=raw) from e
    elif isinstance(raw, dict):
        answer = ConflictAnswer(choice=DecisionChoice.CUSTOM, record=raw)
    else:
        raise InvalidDecisionError(f"Invalid conflict resolution of type {type(raw).__name__}", raw_answer=raw)

    if answer.choice == DecisionChoice.CUSTOM:
        # id and version are stamped from the server copy later, so any placeholder works here.
        try:
            Record.model_validate({**answer.record, RECORD_ID_FIELD: "", RECORD_VERSION_FIELD: None})
        except ValidationError as e:
            raise InvalidDecisionError(f"Invalid custom record: {e}", raw_answer=raw) from e
    return answer

#
# End of offline_sync/Sync/sync_models.py
########################################################################################################################

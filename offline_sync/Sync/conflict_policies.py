# offline_sync/Sync/conflict_policies.py
# Description: Per-operation resolution policies for failed pushes.
#
"""
conflict_policies.py
--------------------

Pure decision logic, one policy per operation kind. Each policy takes the
transport status and the local/remote record snapshots and returns either a
terminal Resolution or a ConflictRequest for the decision gateway to settle.
None of these functions perform I/O.

- Insert: identifiers are client generated and globally unique, so a failed
  insert is always the re-push of an insert the server already applied.
- Update: not-found drops the change, identical payloads are a cosmetic
  conflict, anything else is a genuine conflict for the gateway.
- Delete: an already-absent or tombstoned remote copy means the delete has
  already happened; a live, newer remote copy turns the delete into an update.
"""
# Imports
from typing import Optional, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from offline_sync.Sync.sync_models import (
    ChangeKind, ConflictAnswer, ConflictRequest, DecisionChoice, Discard, DiscardAndAdopt, Fail,
    OperationKind, PushStatus, Reapply, Record, Resolution,
)
#
########################################################################################################################
#
# Functions:

UNEXPECTED_DELETE_STATUS = "unexpected delete-conflict status"
UPDATE_WITHOUT_REMOTE = "update conflict without remote record"


def insert_policy(status: PushStatus, local_record: Record, remote_record: Optional[Record]) -> Resolution:
    return Discard()


def update_policy(status: PushStatus, local_record: Record,
                  remote_record: Optional[Record]) -> Union[Resolution, ConflictRequest]:
    """
    Decides an update conflict, or builds the request for an external decision.

    Returns:
        Discard when the remote record is gone or the payloads already agree,
        a ConflictRequest for a genuine conflict, Fail when no remote copy is available.
    """
    if status == PushStatus.NOT_FOUND:
        # Either the record never existed remotely or it has been deleted; nothing to adopt.
        return Discard()

    if remote_record is None:
        logger.error(f"Update conflict for record '{local_record.id}' (status={status.value}) "
                     f"arrived without a remote record; leaving it queued.")
        return Fail(reason=UPDATE_WITHOUT_REMOTE)

    if local_record.same_payload_as(remote_record):
        return Discard()

    return ConflictRequest(
        record_id=local_record.id,
        candidate=local_record.payload(),
        remote_candidate=remote_record.payload(),
    )


def resolve_update_answer(answer: ConflictAnswer, local_record: Record, remote_record: Record) -> Resolution:
    """Turns the gateway's answer for an update conflict into a Resolution."""
    if answer.choice == DecisionChoice.SKIP:
        return Discard(keep_pending=True)
    if answer.choice == DecisionChoice.SERVER:
        return DiscardAndAdopt(remote_record=remote_record)
    if answer.choice == DecisionChoice.CLIENT:
        # The version stamp must come from the server copy or the next push fails the same way.
        return Reapply(record=local_record.with_fields(version=remote_record.version))
    if answer.choice == DecisionChoice.CUSTOM:
        custom = {**answer.record, "id": remote_record.id, "version": remote_record.version}
        return Reapply(record=Record.model_validate(custom))
    raise ValueError(f"Unknown decision choice: {answer.choice!r}")


def delete_policy(status: PushStatus, local_record: Record, remote_record: Optional[Record]) -> Resolution:
    # Backends disagree on how "already deleted" is reported (404, 409, or 412 carrying a
    # tombstone); all three count as the delete having already happened.
    remote_deleted = remote_record is not None and remote_record.deleted

    if status in (PushStatus.NOT_FOUND, PushStatus.VERSION_CONFLICT):
        return Discard()
    if status == PushStatus.PRECONDITION_FAILED and remote_record is not None:
        if remote_deleted:
            return Discard()
        # Server updated, client deleted: keep the server's value.
        return ChangeKind(new_kind=OperationKind.UPDATE, record=remote_record)

    logger.error(f"Delete conflict for record '{local_record.id}' hit an unmodeled status "
                 f"combination (status={status.value}, remote present={remote_record is not None}).")
    return Fail(reason=UNEXPECTED_DELETE_STATUS)

#
# End of offline_sync/Sync/conflict_policies.py
########################################################################################################################

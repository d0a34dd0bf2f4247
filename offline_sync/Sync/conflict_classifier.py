# offline_sync/Sync/conflict_classifier.py
# Description: Routes a failed push to the policy for its operation kind.
#
# Imports
from typing import Callable, Dict, Optional, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from offline_sync.Sync.conflict_policies import delete_policy, insert_policy, resolve_update_answer, update_policy
from offline_sync.Sync.sync_models import (
    ConflictAnswer, ConflictRequest, Fail, NeedsDecision, OperationKind, PushFailure, PushStatus, Record,
    Resolution,
)
#
########################################################################################################################
#
# Functions:

UNHANDLED_KIND = "unhandled kind"

PolicyFn = Callable[[PushStatus, Record, Optional[Record]], Union[Resolution, ConflictRequest]]

CONFLICT_POLICIES: Dict[OperationKind, PolicyFn] = {
    OperationKind.INSERT: insert_policy,
    OperationKind.UPDATE: update_policy,
    OperationKind.DELETE: delete_policy,
}


def classify(failure: PushFailure) -> Union[Resolution, NeedsDecision]:
    """
    Classifies one failed push into a Resolution, or a NeedsDecision when the
    policy needs an external answer first.

    An operation kind without a policy yields a fatal Fail: the transport and the
    engine disagree on the vocabulary, which the caller must surface.
    """
    policy = CONFLICT_POLICIES.get(failure.kind)
    if policy is None:
        logger.critical(f"No conflict policy for operation kind {failure.kind!r} "
                        f"(record '{failure.local_record.id}').")
        return Fail(reason=UNHANDLED_KIND, fatal=True)

    outcome = policy(failure.status, failure.local_record, failure.remote_record)
    if isinstance(outcome, ConflictRequest):
        return NeedsDecision(request=outcome, failure=failure)
    return outcome


def resume_with_answer(pending: NeedsDecision, answer: ConflictAnswer) -> Resolution:
    failure = pending.failure
    return resolve_update_answer(answer, failure.local_record, failure.remote_record)

#
# End of offline_sync/Sync/conflict_classifier.py
########################################################################################################################

# offline_sync/Sync/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class SyncError(Exception):
    """Base exception for offline_sync errors."""
    pass


class UnhandledConflictError(SyncError):
    """
    Raised when a push failure carries an operation kind the engine does not know.

    This is a programming-contract violation between the transport and the engine,
    never a user-facing conflict.
    """
    def __init__(self, message: str, failure=None):
        super().__init__(message)
        self.failure = failure


class InvalidDecisionError(SyncError):
    """Raised when an external decision fails structural validation."""
    def __init__(self, message: str, raw_answer=None):
        super().__init__(message)
        self.raw_answer = raw_answer

#
# End of offline_sync/Sync/exceptions.py
########################################################################################################################

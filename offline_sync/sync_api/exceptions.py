# offline_sync/sync_api/exceptions.py
#
#
# Imports
from typing import Optional
#
#######################################################################################################################
#
# Functions:

class TransportError(Exception):
    """
    Base exception for failures where a whole push or pull could not be attempted.

    Kept apart from SyncError: a transport failure is never a conflict.
    """
    pass

class TransportConnectionError(TransportError):
    """Raised for network or connection issues."""
    pass

class TransportRequestError(TransportError):
    """Raised for errors in constructing or sending the request (e.g., bad data)."""
    pass

class TransportResponseError(TransportError):
    """Raised for unexpected responses or issues parsing the response."""
    def __init__(self, status_code: int, message: str, response_data: Optional[dict] = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.response_data = response_data or {}

#
# End of offline_sync/sync_api/exceptions.py
########################################################################################################################

# offline_sync/sync_api/schemas.py
# Wire-level shapes returned by the table API.
#
# Imports
from typing import Any, Dict, List, Optional
#
# 3rd-party Libraries
from pydantic import BaseModel, Field
#
########################################################################################################################
#
# Classes:

class TablePage(BaseModel):
    """One page of a table read. Backends return either this envelope or a bare JSON list."""
    results: List[Dict[str, Any]] = Field(default_factory=list)
    count: Optional[int] = None


class ConflictBody(BaseModel):
    """Error body of a rejected write. Some backends wrap the server's current row under `record`."""
    error: Optional[str] = None
    detail: Optional[str] = None
    record: Optional[Dict[str, Any]] = None

#
# End of offline_sync/sync_api/schemas.py
########################################################################################################################

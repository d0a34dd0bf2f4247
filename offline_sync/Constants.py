# Constants.py
# Description: Constants shared across the offline_sync package
#
# Imports
#
# 3rd-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Record fields ---
# Identity and concurrency fields are owned by the sync layer, never edited by users.
RECORD_ID_FIELD = "id"
RECORD_VERSION_FIELD = "version"
RECORD_DELETED_FIELD = "deleted"
RESERVED_RECORD_FIELDS = (RECORD_ID_FIELD, RECORD_VERSION_FIELD, RECORD_DELETED_FIELD)

# System columns some table backends attach to every row. They are dropped on the way in
# so that they never take part in payload comparison.
SERVER_METADATA_FIELDS = ("createdAt", "updatedAt", "created_at", "updated_at")

# --- Sync defaults ---
DEFAULT_TABLE_NAME = "todoitem"
DEFAULT_SERVER_URL = "http://127.0.0.1:8000"
DEFAULT_CLIENT_ID = "offline_sync_local_instance_v1"
DEFAULT_HTTP_TIMEOUT_SECONDS = 45.0
DEFAULT_PULL_PAGE_SIZE = 50
DEFAULT_DECISION = "server"
VALID_DEFAULT_DECISIONS = ("server", "client", "skip")

# --- HTTP status codes the transport normalizes ---
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_PRECONDITION_FAILED = 412

# --- Reporting messages ---
MSG_PUSH_COMPLETED_WITH_CONFLICTS = "Push completed with {count} conflict(s)"
MSG_PUSH_FAILED = "Push failed. Error: {error}"
MSG_PULL_FAILED = "Pull failed. Error: {error}"

#
# End of Constants.py
########################################################################################################################

"""Names and defaults shared across proctrail."""

# Activity names are part of the wire contract between workflow code and the
# worker registration; they must not change.
PROCESS_LOG_ACTIVITY_NAME = "process-log"
PROCESS_EVENT_ACTIVITY_NAME = "process-event"

REQUIRED_ACTIVITIES = (PROCESS_LOG_ACTIVITY_NAME, PROCESS_EVENT_ACTIVITY_NAME)

MAX_ORG_ID = 2**31 - 1

DEFAULT_CONFIG_PATH = "proctrail.yaml"

"""Shared constants for FHIR Audit Bridge."""

SERVER_NAME = "FHIR Audit Bridge"
SERVER_VERSION = "0.1.0"

# Listener id used by the host when registering the event listener
PROVIDER_ID = "fhir-auditevent"

# Logging defaults
DEFAULT_LOG_LEVEL = "INFO"
# Minted dynamic tokens kept for log redaction
TRANSIENT_SECRET_LIMIT = 16

# HTTP delivery
CONNECTION_TIMEOUT_SECONDS = 10.0
REQUEST_TIMEOUT_SECONDS = 30.0
CONTENT_TYPE_FHIR_JSON = "application/fhir+json"
WORKER_POOL_SIZE = 4
WORKER_QUEUE_SIZE = 1000

# Sentinel used for fields the host did not provide
UNKNOWN = "unknown"

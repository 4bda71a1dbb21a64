# deid_pipeline/core/definitions.py

"""Constants shared by the shaping, packing and calling stages."""

# Hard payload ceiling of a single deidentify request.
DLP_PAYLOAD_LIMIT_BYTES = 524000

# Header used when input records are unstructured text.
UNSTRUCTURED_FIELD_NAME = "value"

DEFAULT_BATCH_SIZE_BYTES = 50000

DEFAULT_SCORE_THRESHOLD = 0.35


class OperatorType:
    """Anonymization operators understood by deidentify policies."""

    REPLACE = "replace"
    REDACT = "redact"
    MASK = "mask"
    HASH = "hash"
    KEEP = "keep"


class RemoteStatus:
    """Status codes attached to remote call failures."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    UNAVAILABLE = "UNAVAILABLE"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"

"""Error taxonomy for the evidence-analysis pipeline.

Every error carries a stable ``code`` (returned to API callers in the
``{"error": ..., "code": ...}`` body) and the HTTP status it maps to.
Server-side pipeline errors and the client-side upload errors share the base
class so callers can catch ``LiquidAppError`` and show ``str(exc)``.
"""
from __future__ import annotations


class LiquidAppError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ConfigurationError(LiquidAppError):
    """A required external credential or setting is absent. Fatal for the call."""
    code = "configuration_error"
    status_code = 400


class ValidationError(LiquidAppError):
    code = "validation_error"
    status_code = 400


class NotFoundError(LiquidAppError):
    code = "not_found"
    status_code = 404


class ExternalCallError(LiquidAppError):
    """The model provider call failed (network, timeout, provider-side error)."""
    code = "external_call_error"
    status_code = 500


class ParseError(LiquidAppError):
    """The model answered, but not with something we can persist."""
    code = "parse_error"
    status_code = 500


class UnparseableResponseError(ParseError):
    code = "unparseable_response"


class SchemaViolationError(ParseError):
    code = "schema_violation"


class PersistenceError(LiquidAppError):
    code = "persistence_error"
    status_code = 500


# Client-side upload steps. Each names the step that failed so the caller
# knows which earlier side effect (if any) was left behind.

class StorageWriteError(PersistenceError):
    code = "storage_write_failed"


class MetadataPersistError(PersistenceError):
    code = "metadata_persist_failed"


class SignedUrlError(PersistenceError):
    code = "signed_url_failed"

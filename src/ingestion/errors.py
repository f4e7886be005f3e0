"""
Failures raised by the upload ingestion pipeline.

Every error carries a machine-readable ``code`` and the HTTP status the API
answers with. The first failure aborts the remaining stages and reaches the
caller unchanged.
"""

from typing import Dict, Optional


class IngestError(Exception):
    code = "IngestError"
    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class MalformedBody(IngestError):
    """The request body is not readable multipart data."""

    code = "MalformedBody"
    status_code = 400


class InvalidInput(IngestError):
    """One or more form fields failed validation."""

    code = "InvalidInput"
    status_code = 400

    def __init__(self, fields: Dict[str, str]):
        message = "; ".join(f"{name}: {reason}" for name, reason in fields.items())
        super().__init__(message)
        self.fields = fields

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["fields"] = self.fields
        return payload


class StorageFailure(IngestError):
    code = "StorageFailure"
    status_code = 500

    def __init__(self, stage: str, details: Optional[str] = None):
        super().__init__(f"Failed to store {stage} file.", details=details)
        self.stage = stage

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["stage"] = self.stage
        return payload


class PersistenceFailure(IngestError):
    code = "PersistenceFailure"
    status_code = 500

    def __init__(self, details: Optional[str] = None):
        super().__init__("Failed to save video metadata.", details=details)


class IngestTimeout(IngestError):
    code = "IngestTimeout"
    status_code = 504

    def __init__(self, seconds: float):
        super().__init__(f"Upload did not complete within {seconds:g} seconds.")
        self.seconds = seconds

"""
Error taxonomy for the conversion core.

Every error carries a classification string (``error``) and a
``client_error`` flag so the HTTP layer can tell bad input from
internal failures without knowing about individual exception types.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ConversionError(Exception):
    error = "conversion_failed"
    client_error = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "detail": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidPayload(ConversionError):
    error = "invalid_payload"
    client_error = True


class PayloadTooLarge(InvalidPayload):
    error = "payload_too_large"


class InvalidOption(ConversionError):
    error = "invalid_option"
    client_error = True


class SheetNotFound(ConversionError):
    error = "sheet_not_found"
    client_error = True

    def __init__(self, reference: Any, available: list[str]) -> None:
        if isinstance(reference, int):
            message = f"Sheet index {reference} not found. Available: {', '.join(available)}"
        else:
            message = f'Sheet "{reference}" not found. Available: {", ".join(available)}'
        super().__init__(message, {"available": list(available)})
        self.reference = reference
        self.available = list(available)


class DecodeError(ConversionError):
    """The workbook bytes could not be decoded."""


class ExternalEngineError(ConversionError):
    error = "engine_failed"


class ExternalEngineUnavailable(ExternalEngineError):
    error = "engine_unavailable"


class ExternalEngineFailed(ExternalEngineError):
    pass

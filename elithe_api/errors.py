from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Business error resolved into an HTTP response by ``observability.add_exception_handlers``."""

    status_code = 400
    default_message = "Bad request"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 400
    default_message = "Conflict"


class AlreadyConfirmed(ConflictError):
    default_message = "Already confirmed for this event"


class AlreadyCheckedIn(ConflictError):
    default_message = "Check-in já realizado"

    def __init__(self, checked_in_at: Optional[str], user_name: Optional[str], message: Optional[str] = None) -> None:
        super().__init__(message, alreadyCheckedIn=True, checkedInAt=checked_in_at, userName=user_name)


class EventNotAvailable(AppError):
    status_code = 400
    default_message = "Event not active or not found"


class UnrecognizedCredential(AppError):
    status_code = 400
    default_message = "Tipo de QR Code desconhecido"


class EventSelectionRequired(AppError):
    status_code = 400
    default_message = "Selecione um evento para validar Carteirinha de Membro"


class InternalError(AppError):
    status_code = 500
    default_message = "Internal server error"


class CredentialIssuanceError(Exception):
    """Raised when a check-in credential cannot be rendered. Never mapped to an HTTP status directly."""

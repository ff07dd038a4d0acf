# Overview: Domain errors raised by document, inventory and lifecycle services.

from __future__ import annotations


class DocumentError(ValueError):
    """
    Base class for document domain errors.

    These are business-rule violations, not technical failures. Routes turn
    them into a JSON body with the message and a machine-readable code.
    """
    code = "document_error"
    http_status = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        data = {"error": self.message, "code": self.code}
        data.update({k: v for k, v in self.details.items() if v is not None})
        return data


class InvalidTransition(DocumentError):
    code = "invalid_transition"
    http_status = 409

    def __init__(self, *, document_type: str, current_status: str, target: str, action: str | None = None):
        label = action or target
        super().__init__(
            f"Cannot {label} a {document_type} in status '{current_status}'",
            document_type=document_type,
            current_status=current_status,
            target=target,
            action=action,
        )
        self.current_status = current_status
        self.target = target


class MissingPrerequisite(DocumentError):
    code = "missing_prerequisite"
    http_status = 422


class AlreadyProcessed(DocumentError):
    code = "already_processed"
    http_status = 409


class DocumentNotFound(DocumentError):
    code = "not_found"
    http_status = 404


class DocumentNotOwned(DocumentError):
    code = "not_owned"
    http_status = 404


class InsufficientStock(DocumentError):
    code = "insufficient_stock"
    http_status = 409


class InvalidInput(DocumentError):
    code = "invalid_input"
    http_status = 400

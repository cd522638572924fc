from typing import Any, Dict, Optional


class RagChatError(Exception):
    """Base error surfaced to API callers as {"error": message, "details": ...}."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(RagChatError):
    status_code = 400


class AuthenticationError(RagChatError):
    status_code = 401


class AccessDeniedError(RagChatError):
    status_code = 403


class ServiceError(RagChatError):
    status_code = 500


class InvalidDatasetName(ValidationError, ValueError):
    pass


class EmbeddingError(ServiceError):
    pass


class CompletionError(ServiceError):
    pass

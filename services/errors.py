"""
Service-layer exceptions mapped to HTTP status codes by security.setup_error_handlers.
"""


class ServiceError(Exception):
    """Base class for errors raised by repositories and services."""
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(ServiceError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.replace('_', ' ').capitalize()} not found")


class PermissionDenied(ServiceError):
    status_code = 403


class ProviderError(ServiceError):
    """Outbound email/SMS provider failed or is not configured."""
    status_code = 502

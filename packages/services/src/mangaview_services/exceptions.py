"""Service layer exceptions."""

from typing import Optional


class ServiceError(Exception):
    """Base exception for service errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        external_url: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.external_url = external_url
        super().__init__(message)


class NotFoundError(ServiceError):
    """Resource not found upstream."""

    def __init__(self, resource_type: str, resource_id: str, external_url: Optional[str] = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            code="NOT_FOUND",
            external_url=external_url,
        )


class ValidationError(ServiceError):
    """Validation error."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, code="VALIDATION_ERROR")


class GatewayUnavailable(ServiceError):
    """The upstream catalog call failed, timed out or returned garbage."""

    def __init__(self, message: str, external_url: Optional[str] = None):
        super().__init__(message, code="GATEWAY_UNAVAILABLE", external_url=external_url)


class NoPagesFound(ServiceError):
    """A chapter resolved but has no page images."""

    def __init__(self, chapter_id: str, external_url: Optional[str] = None):
        self.chapter_id = chapter_id
        super().__init__(
            f"Chapter '{chapter_id}' has no pages",
            code="NO_PAGES_FOUND",
            external_url=external_url,
        )


class RelayForbidden(ServiceError):
    """The image relay refused to fetch a URL."""

    def __init__(self, message: str, url: str):
        self.url = url
        super().__init__(message, code="RELAY_FORBIDDEN")


class RelayError(ServiceError):
    """The image relay could not fetch an image."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message, code="RELAY_ERROR")


class ImageLoadError(Exception):
    """A page image could not be loaded in one addressing form."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load {url}: {reason}")

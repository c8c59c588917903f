from typing import Any, Callable


class GatewayError(Exception):
    """Base class for webhook gateway and billing errors."""


class MalformedRequestError(GatewayError):
    """Payload or signature header missing, empty, or undecodable."""


class SignatureVerificationError(GatewayError):
    """Signature mismatch, malformed header or timestamp outside tolerance."""


class HandlerError(GatewayError):
    def __init__(self, handler: str, event_type: str, error: BaseException):
        self.handler = handler
        self.event_type = event_type
        self.error = error
        super().__init__(
            f"Handler {handler} failed for {event_type}: {type(error).__name__}"
        )


class AllHandlersFailedError(GatewayError):
    def __init__(self, result: Any):
        self.result = result
        super().__init__(
            f"All {len(result.failures)} handler(s) failed for {result.event.type}"
        )


class BillingApiError(GatewayError):
    """A provider API call failed."""

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        code: str | None = None,
        error_type: str | None = None,
    ):
        self.http_status = http_status
        self.code = code
        self.error_type = error_type
        super().__init__(message)


class BillingStoreError(GatewayError):
    """The application store did not provide a required entity."""


def handler_name(handler: Callable) -> str:
    module = getattr(handler, "__module__", None) or ""
    name = getattr(handler, "__qualname__", None) or repr(handler)
    return f"{module}.{name}" if module else name

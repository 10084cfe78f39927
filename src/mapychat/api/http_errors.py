"""HTTP error taxonomy for the proxy endpoint.

Every error the proxy returns is a ProxyHTTPError rendered as
``{"error": <message>, "code": <code>}`` with optional extra headers.
Messages are user-facing and in Spanish; codes are stable identifiers
clients can branch on.

Codes:
    - forbidden (403): cross-origin request
    - unsupported_media_type (415): body is not JSON
    - rate_limited (429): fixed window exhausted
    - bad_request (400): validation or content-policy failure
    - upstream_error (upstream status or 502): provider rejected or unreachable
    - internal_server_error (500): misconfiguration or unexpected failure
"""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import status


class ProxyHTTPError(Exception):
    """An error response the proxy sends to the client.

    Attributes:
        status_code: HTTP status.
        code: Stable error code for the JSON body.
        message: User-facing message for the JSON body.
        headers: Extra response headers (Retry-After, RateLimit-*).
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.headers: dict[str, str] = dict(headers or {})

    def with_headers(self, headers: Mapping[str, str] | None) -> ProxyHTTPError:
        """Return a copy with ``headers`` added; existing keys take precedence."""
        if not headers:
            return self
        merged = {**headers, **self.headers}
        return ProxyHTTPError(self.status_code, self.code, self.message, merged)


def forbidden_origin_error() -> ProxyHTTPError:
    return ProxyHTTPError(
        status.HTTP_403_FORBIDDEN, "forbidden", "Acceso prohibido: Origen no autorizado"
    )


def unsupported_media_type_error() -> ProxyHTTPError:
    return ProxyHTTPError(
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
        "unsupported_media_type",
        "Content-Type debe ser application/json",
    )


def rate_limited_error(headers: Mapping[str, str]) -> ProxyHTTPError:
    """Return the 429 error; ``headers`` carries Retry-After and RateLimit-*."""
    return ProxyHTTPError(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "rate_limited",
        "Demasiadas solicitudes. Intenta de nuevo en unos segundos.",
        headers,
    )


def bad_request_error(message: str) -> ProxyHTTPError:
    return ProxyHTTPError(status.HTTP_400_BAD_REQUEST, "bad_request", message)


def upstream_error(upstream_status: int | None = None) -> ProxyHTTPError:
    """Return an error for a failed provider call.

    Provider 4xx/5xx statuses are passed through; anything else (no status,
    or a non-error status such as a 2xx without a body) becomes 502.
    """
    status_code = (
        upstream_status
        if upstream_status is not None and 400 <= upstream_status <= 599
        else status.HTTP_502_BAD_GATEWAY
    )
    return ProxyHTTPError(status_code, "upstream_error", "Error en la API de xAI")


def internal_error(message: str = "Error interno del servidor") -> ProxyHTTPError:
    return ProxyHTTPError(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_server_error", message
    )


def missing_api_key_error() -> ProxyHTTPError:
    return internal_error("Configuración del servidor incompleta")


__all__ = [
    "ProxyHTTPError",
    "bad_request_error",
    "forbidden_origin_error",
    "internal_error",
    "missing_api_key_error",
    "rate_limited_error",
    "unsupported_media_type_error",
    "upstream_error",
]

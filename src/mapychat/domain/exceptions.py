"""Domain exceptions for the MapyChat proxy.

This module defines pure domain exceptions with no framework dependencies.
They represent rule violations detected while validating chat payloads or
screening user text, and are converted to HTTP responses at the API boundary.

Exception Hierarchy:
    - DomainError: Base exception for all domain errors
    - InvalidModelError: Requested model is not in the allowed set
    - MessageValidationError: Prompt or message payload violates shape/size rules
    - PolicyViolationError: Content guard rejected a text segment
"""

from __future__ import annotations

POLICY_MESSAGE_PREFIX = "Lo siento, eso viola nuestras reglas de contenido seguro"
"""User-facing prefix shared by every content-policy rejection."""

GENERIC_POLICY_MESSAGE = f"{POLICY_MESSAGE_PREFIX}. ¿Quieres probar algo diferente?"
"""Rule-agnostic rejection shown by chat clients."""


class DomainError(Exception):
    """Base exception for all domain errors.

    Catching DomainError catches every validation and policy failure, which
    the API layer maps to a 400 response.
    """


class InvalidModelError(DomainError):
    """Raised when the requested upstream model is not allowed."""


class MessageValidationError(DomainError):
    """Raised when prompts or messages fail structural or size validation.

    Common causes:
        - Unknown role or part type
        - Missing, empty or oversized text
        - Malformed or oversized image data URL
        - Unsupported URL scheme
    """


class PolicyViolationError(DomainError):
    """Raised when the content guard matches a policy rule.

    Attributes:
        reason: Short rule identifier (e.g. "referencia a menores"). Distinct
            per rule so callers can tailor feedback.

    The message names the reason unless an explicit ``message`` is given.
    """

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"{POLICY_MESSAGE_PREFIX} ({reason}).")


__all__ = [
    "GENERIC_POLICY_MESSAGE",
    "POLICY_MESSAGE_PREFIX",
    "DomainError",
    "InvalidModelError",
    "MessageValidationError",
    "PolicyViolationError",
]

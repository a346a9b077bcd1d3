# This module defines the error taxonomy raised by the estimation engine.
# Every error carries a machine-readable code and a caller category so handlers can tell
# "fix your input" apart from "try again later" and "service currently impaired".
# Zero-data categories are never errors; they are reported in-band on the results.

from __future__ import annotations

from typing import Any

INVALID_INPUT = "invalid_input"
RETRY_LATER = "retry_later"
SERVICE_IMPAIRED = "service_impaired"


class EstimationError(RuntimeError):
    """Base error for estimation and coverage requests."""

    error_code = "ESTIMATION_ERROR"
    category = SERVICE_IMPAIRED

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "category": self.category,
            "message": self.message,
            "details": self.details,
        }


class InvalidPersonaError(EstimationError):
    error_code = "INVALID_PERSONA"
    category = INVALID_INPUT

    def __init__(self, problems: list[str]) -> None:
        super().__init__(f"invalid persona: {'; '.join(problems)}", details={"problems": list(problems)})
        self.problems = list(problems)


class RegionNotSupportedError(EstimationError):
    error_code = "REGION_NOT_SUPPORTED"
    category = INVALID_INPUT

    def __init__(self, region: str, allowlist: tuple[str, ...]) -> None:
        super().__init__(
            f"region {region!r} is not supported",
            details={"region": region, "supported_regions": list(allowlist)},
        )
        self.region = region


class DataAccessError(EstimationError):
    """Storage or query failure surfaced by the data access port."""

    error_code = "DATA_ACCESS_ERROR"

    def __init__(self, message: str, *, transient: bool = False, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)
        self.transient = transient
        self.category = RETRY_LATER if transient else SERVICE_IMPAIRED


class EstimationCancelledError(EstimationError):
    """Raised when the caller cancels or the request deadline passes mid fan-out."""

    error_code = "ESTIMATION_CANCELLED"
    category = RETRY_LATER

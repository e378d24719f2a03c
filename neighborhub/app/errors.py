"""
errors.py — AppError base class and error code registry.

Every error returned by the NeighborHub API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - New error codes require: add constant here + add test
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"

    # ── Credential / Signup Errors (400) ───────────────────────────────────
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"
    USERNAME_TAKEN             = "USERNAME_TAKEN"
    PHONE_TAKEN                = "PHONE_TAKEN"
    EMAIL_TAKEN                = "EMAIL_TAKEN"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"         # 401 inside token flows

    # ── Token Errors (401) ─────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    TOKEN_MISSING              = "TOKEN_MISSING"          # no Authorization header
    TOKEN_MALFORMED            = "TOKEN_MALFORMED"        # bad Bearer prefix or undecodable JWT
    TOKEN_INVALID              = "TOKEN_INVALID"          # signature mismatch, bad claims, wrong type
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # exp claim in the past
    TOKEN_UNKNOWN              = "TOKEN_UNKNOWN"          # never issued by this server
    TOKEN_REVOKED              = "TOKEN_REVOKED"          # row flagged revoked or expired
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"

"""
errors.py — AppError base class and error code registry.

Every error returned by the RoomSync core must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - The error KIND (VALIDATION, NOT_FOUND, CONFLICT, FORBIDDEN,
    DEPENDENCY_FAILURE) is derived from the HTTP status, so a code can never
    drift into the wrong category.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class ErrorKind:

    VALIDATION         = "VALIDATION"
    NOT_FOUND          = "NOT_FOUND"
    CONFLICT           = "CONFLICT"
    FORBIDDEN          = "FORBIDDEN"
    DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
    UNAUTHENTICATED    = "UNAUTHENTICATED"
    INTERNAL           = "INTERNAL"


_KIND_BY_STATUS: dict[int, str] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.UNAUTHENTICATED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    503: ErrorKind.DEPENDENCY_FAILURE,
}


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field    # which request field caused the error
        self.details     = details  # e.g. {"member_count": 8, "capacity": 8}

    @property
    def kind(self) -> str:
        return _KIND_BY_STATUS.get(self.http_status, ErrorKind.INTERNAL)

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "kind":    self.kind,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class DependencyFailure(AppError):
    """
    The record store or the user directory could not answer.

    Raised by UserDirectory when a lookup errors. The owner-dereference path in
    GroupService recovers from it locally; every other caller lets it propagate.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(
            ErrorCode.DEPENDENCY_FAILURE,
            message,
            503,
            details=details,
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) — VALIDATION ───────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"

    # ── Conflict Errors (409) — CONFLICT ───────────────────────────────────
    ALREADY_IN_GROUP           = "ALREADY_IN_GROUP"      # one group per user
    ALREADY_MEMBER             = "ALREADY_MEMBER"        # already in THIS group
    GROUP_FULL                 = "GROUP_FULL"            # capacity 8
    ALREADY_OWNER              = "ALREADY_OWNER"
    CANNOT_REMOVE_OWNER        = "CANNOT_REMOVE_OWNER"
    DUPLICATE_ASSIGNMENT       = "DUPLICATE_ASSIGNMENT"  # (user, week) pair

    # ── Not Found Errors (404) — NOT_FOUND ─────────────────────────────────
    NOT_IN_GROUP               = "NOT_IN_GROUP"          # caller has no group
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"       # unknown invite code / id
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"
    NOT_A_MEMBER               = "NOT_A_MEMBER"          # target outside the group
    TASK_NOT_FOUND             = "TASK_NOT_FOUND"
    ASSIGNMENT_NOT_FOUND       = "ASSIGNMENT_NOT_FOUND"

    # ── Role Errors (403) — FORBIDDEN ──────────────────────────────────────
    NOT_OWNER                  = "NOT_OWNER"
    NO_PERMISSION              = "NO_PERMISSION"         # not creator, not owner

    # ── Auth Errors (401) ──────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"

    # ── Dependency Errors (503) — DEPENDENCY_FAILURE ───────────────────────
    DEPENDENCY_FAILURE         = "DEPENDENCY_FAILURE"
    INVITE_CODE_EXHAUSTED      = "INVITE_CODE_EXHAUSTED"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"

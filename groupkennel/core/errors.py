# ================================================================
# File     : errors.py
# Purpose  : Exception types raised by the Graph client and adapter
# Notes    : Auth failures and a failed group listing are fatal for a
#            run; everything else is caught per group / per source and
#            downgraded to warnings.
# ================================================================

from typing import Optional

AUTH_ERROR_CODES = ("InvalidAuthenticationToken", "Authorization_RequestDenied")


class GraphRequestError(Exception):
    """Raised when a Graph call returns a non-success status after retries."""

    def __init__(self, status_code: int, body: str = "", url: str = ""):
        self.status_code = status_code
        self.body = body or ""
        self.url = url
        super().__init__(f"Graph API request failed with status {status_code}: {self.body[:200]}")

    def is_auth_error(self) -> bool:
        if self.status_code in (401, 403):
            return True
        return any(code in self.body for code in AUTH_ERROR_CODES)


class GraphAuthError(Exception):
    """Token acquisition failed; nothing can be fetched."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)


class ReportUnavailableError(Exception):
    """Every usage-report fetch strategy failed."""


class DirectoryUnavailableError(Exception):
    """The initial group listing failed; there is nothing to assess."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def _error_payload(code: str, message: str, details):
    return {"code": code, "message": message, "details": details}


# ---------------------------------------------------------------------------
# Lifecycle errors
#
# Raised from the service layer and rendered by the HTTPException handler
# below, so API callers always receive {"code", "message", "details"}.
# ---------------------------------------------------------------------------


class LifecycleError(HTTPException):
    status_code = 400
    code = "lifecycle_error"
    message = "Lifecycle operation failed"

    def __init__(self, message: str | None = None, details=None):
        self.message = message or self.message
        self.details = details
        super().__init__(
            status_code=self.status_code,
            detail={"code": self.code, "message": self.message, "details": details},
        )

    def __str__(self) -> str:
        return self.message


class LockedDocumentError(LifecycleError):
    status_code = 403
    code = "document_locked"
    message = (
        "Document is locked and cannot be modified. "
        "Create a new version to make changes."
    )


class NoIssuedBaselineError(LifecycleError):
    status_code = 409
    code = "no_issued_baseline"
    message = "No issued version found to create a new version from"


class DraftAlreadyExistsError(LifecycleError):
    status_code = 409
    code = "draft_already_exists"
    message = "A draft version already exists for this document"


class NotDraftError(LifecycleError):
    status_code = 409
    code = "not_draft"
    message = (
        "Only draft documents can be issued. This document has already been "
        "issued; create a new version and issue that instead."
    )


class InvalidTransitionError(LifecycleError):
    status_code = 409
    code = "invalid_transition"
    message = "Document status transition is not allowed"


class IssueBlockedError(LifecycleError):
    status_code = 422
    code = "issue_blocked"
    message = "Document is not ready to be issued"


class BaselineSnapshotMissing(LifecycleError):
    status_code = 500
    code = "baseline_snapshot_missing"
    message = "Issued baseline snapshot is missing or corrupt"


class SnapshotImmutableError(LifecycleError):
    status_code = 500
    code = "snapshot_immutable"
    message = "Revision snapshots are append-only"


class PdfIntegrityError(LifecycleError):
    status_code = 500
    code = "pdf_integrity_mismatch"
    message = "Stored PDF does not match its recorded checksum"


class PdfGenerationError(LifecycleError):
    status_code = 502
    code = "pdf_generation_failed"
    message = "PDF generation failed; the document remains a draft"


class TokenNotFoundError(LifecycleError):
    status_code = 404
    code = "not_found"
    message = "Invalid or expired link"


class TokenRevokedError(LifecycleError):
    status_code = 403
    code = "revoked"
    message = "This link has been revoked"


class TokenExpiredError(LifecycleError):
    status_code = 403
    code = "expired"
    message = "This link has expired"


class NoIssuedVersionError(LifecycleError):
    status_code = 404
    code = "no_issued_version"
    message = "No issued document available"


def register_error_handlers(app) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail
        code = f"http_{exc.status_code}"
        message = "Request failed"
        details = None
        if isinstance(detail, dict):
            code = detail.get("code", code)
            message = detail.get("message", message)
            details = detail.get("details")
        elif isinstance(detail, str):
            message = detail
        else:
            details = detail
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(code, message, details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        # exc.errors() ctx may contain raw Exception objects (not JSON-serialisable).
        errors = [
            {k: str(v) if k == "ctx" else v for k, v in err.items()}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_error_payload("validation_error", "Validation error", errors),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_payload("internal_error", "Internal server error", None),
        )

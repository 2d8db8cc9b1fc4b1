"""Contact routes for relaying website messages to the team mailbox."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from src.shared.contact.csrf import CSRF_SESSION_KEY, get_or_create_csrf_token
from src.shared.contact.pipeline import SubmissionPipeline
from src.shared.contact.schemas import (
    ContactResponse,
    CsrfTokenResponse,
    RawFile,
    SubmissionRequest,
)

router = APIRouter(prefix="/api/contact", tags=["contact"])

FORM_TEXT_FIELDS = ("name", "email", "subject", "message", "csrf_token", "website")


def get_client_ip(request: Request) -> str:
    """Get client IP address for rate limiting."""
    # Check for forwarded IP (from proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP in the chain
        return forwarded.split(",")[0].strip()
    # Fallback to direct connection
    return request.client.host if request.client else "unknown"


def get_pipeline(request: Request) -> SubmissionPipeline:
    """Dependency to get the pipeline built by the app factory."""
    return request.app.state.contact_pipeline


async def read_logo(value, max_bytes: int):
    """Turn the multipart ``logo`` value into a RawFile, or None when no file was chosen."""
    if value is None:
        return None

    if isinstance(value, UploadFile):
        # Browsers send an empty part with an empty filename when nothing was selected
        if not value.filename:
            return None
        try:
            # One byte over the limit is enough to reject as too large
            data = await value.read(max_bytes + 1)
        except OSError as e:
            return RawFile(filename=value.filename, content_type=value.content_type, error=str(e))
        finally:
            await value.close()
        return RawFile(filename=value.filename, content_type=value.content_type, data=data)

    if str(value).strip():
        return RawFile(filename="", error="logo field was not sent as a file upload")
    return None


async def build_submission(request: Request, max_attachment_bytes: int) -> SubmissionRequest:
    """Collect everything the pipeline needs from the HTTP request."""
    submission = SubmissionRequest(
        method=request.method,
        client_identifier=get_client_ip(request),
        session_csrf_token=request.session.get(CSRF_SESSION_KEY),
    )
    if request.method != "POST":
        return submission

    form = await request.form()
    fields = {}
    for field in FORM_TEXT_FIELDS:
        value = form.get(field)
        fields[field] = value if isinstance(value, str) else None

    return submission.model_copy(update={
        "name": fields["name"],
        "email": fields["email"],
        "subject": fields["subject"],
        "message": fields["message"],
        "csrf_token": fields["csrf_token"],
        "honeypot": fields["website"],
        "attachment": await read_logo(form.get("logo"), max_attachment_bytes),
    })


@router.api_route(
    "/submit",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    response_model=ContactResponse,
)
async def submit_contact_form(
    request: Request,
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    """
    Submit a contact form message to the configured recipient.

    Checks, in order: request method, per-IP rate limit, honeypot field,
    CSRF token, field rules, optional logo (PNG/JPG/SVG, max 2 MB).
    Undeliverable messages are kept in the failure store for manual resend.

    Status codes: 200 delivered, 400 validation or security rejection,
    405 wrong method, 429 rate limit, 500 delivery failure.
    """
    submission = await build_submission(request, pipeline.settings.max_attachment_bytes)

    # smtplib blocks; keep it off the event loop
    result = await run_in_threadpool(pipeline.run, submission)

    return JSONResponse(
        status_code=result.status_code,
        content=result.to_response().model_dump(),
    )


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def get_csrf_token(request: Request):
    """Return the session's CSRF token, creating it on first access."""
    return CsrfTokenResponse(csrf_token=get_or_create_csrf_token(request.session))

"""Contact Relay Service - FastAPI server for the website contact form.

Run with: uvicorn src.app:create_app --factory
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from src.shared.contact.config import ContactSettings
from src.shared.contact.database import init_db, make_engine, make_session_factory
from src.shared.contact.email_utils import Mailer, SmtpMailer
from src.shared.contact.pipeline import SubmissionPipeline
from src.shared.contact.rate_limiting import RateLimiter, RateLimitStore, SqlRateLimitStore
from src.shared.contact.routes import router as contact_router

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


def error_headers(request: Request, allowed_origins) -> dict:
    """
    Headers for responses built outside the middleware stack.

    Unhandled exceptions are answered by the server error middleware, which
    sits outside CORS and the security-header middleware, so both are added
    here by hand.
    """
    headers = dict(SECURITY_HEADERS)
    origin = request.headers.get("origin")
    if origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
        headers["Vary"] = "Origin"
    return headers


def build_rate_limit_store(settings: ContactSettings) -> RateLimitStore:
    """Database-backed store from DATABASE_URL, creating the table if needed."""
    engine = make_engine(settings.database_url)
    init_db(engine)
    return SqlRateLimitStore(make_session_factory(engine))


def create_app(
    settings: Optional[ContactSettings] = None,
    mailer: Optional[Mailer] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
) -> FastAPI:
    """Build the application. Tests pass in-memory collaborators."""
    if settings is None:
        settings = ContactSettings.from_env()
    if mailer is None:
        mailer = SmtpMailer.from_settings(settings)
        if not settings.smtp_user or not settings.smtp_password:
            logging.warning("SMTP credentials not configured, relaying without authentication")
    if rate_limit_store is None:
        rate_limit_store = build_rate_limit_store(settings)

    rate_limiter = RateLimiter(
        rate_limit_store,
        max_attempts=settings.max_attempts,
        period=settings.rate_limit_period,
    )

    app = FastAPI(
        title="Contact Relay Service",
        description="Website contact form relay with spam protection",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.contact_pipeline = SubmissionPipeline.build(settings, rate_limiter, mailer)

    # Include contact routes
    app.include_router(contact_router)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    # Sessions hold the CSRF token
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        same_site="strict",
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Every error answers with the same payload shape as the contact endpoint
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Invalid request."
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid request."},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error"},
            headers=error_headers(request, settings.allowed_origins),
        )

    @app.get("/")
    async def root():
        return {"message": "Contact Relay Service is running", "status": "ok"}

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)

"""Response hardening for every route."""

from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

# JSON only; nothing here should ever be framed, sniffed or run as a page.
API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add browser security headers to all responses.

    Responses under ``/api`` also get ``Cache-Control: no-store`` because they
    may carry session cookies or registration tokens.
    """

    def __init__(
        self,
        app: ASGIApp,
        enable_hsts: bool = True,
        hsts_max_age: int = 15552000,
        frame_options: str = "DENY",
        referrer_policy: str = "no-referrer",
    ) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts
        self.hsts_max_age = hsts_max_age
        self.frame_options = frame_options
        self.referrer_policy = referrer_policy

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)

        headers = response.headers
        headers["X-Content-Type-Options"] = "nosniff"
        headers["X-Frame-Options"] = self.frame_options
        headers["Referrer-Policy"] = self.referrer_policy
        headers["Content-Security-Policy"] = API_CSP
        headers["Cross-Origin-Opener-Policy"] = "same-origin"
        headers["Cross-Origin-Resource-Policy"] = "same-origin"
        if self.enable_hsts:
            headers["Strict-Transport-Security"] = f"max-age={self.hsts_max_age}; includeSubDomains"
        if request.url.path.startswith("/api/"):
            headers.setdefault("Cache-Control", "no-store")

        return response

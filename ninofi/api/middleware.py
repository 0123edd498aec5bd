import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ninofi.common.logging import get_logger
from ninofi.core.audit.service import client_ip

logger = get_logger("middleware")

REQUEST_ID_HEADER = "X-Request-ID"


class AuditMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs its outcome and duration.

    A client-supplied ``X-Request-ID`` is reused so mobile retries can be
    correlated with server logs; otherwise a fresh one is generated.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        client_host = request.client.host if request.client else None
        ip_token = client_ip.set(client_host)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            client_ip.reset(ip_token)
        elapsed_ms = (time.perf_counter() - started) * 1000

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "[%s] %s %s -> %d in %.1fms (client=%s)",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            client_host or "-",
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"
        return response

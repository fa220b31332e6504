import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s -> unhandled error [%s] (%.2fs)",
                request.method,
                request.url.path,
                request_id,
                time.monotonic() - start,
            )
            raise

        duration = time.monotonic() - start
        logger.info(
            "%s %s -> %s [%s] (%.2fs)",
            request.method,
            request.url.path,
            response.status_code,
            request_id,
            duration,
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

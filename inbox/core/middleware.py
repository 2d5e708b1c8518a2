import logging
import uuid
from time import perf_counter

from fastapi import Request

from inbox.utils.logging_config import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def logging_middleware(request: Request, call_next):
    """
    Tag everything logged while serving a request with one request id.

    The id comes from the caller's `X-Request-ID` header when present and is
    echoed back on the response so client reports can be matched to log lines.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    started = perf_counter()

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"request_failed method={request.method} path={request.url.path}")
        raise
    else:
        elapsed_ms = (perf_counter() - started) * 1000.0
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            f"request method={request.method} path={request.url.path} "
            f"status={response.status_code} elapsed_ms={elapsed_ms:.1f}",
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        request_id_var.reset(token)

import time
import uuid
import logging
from fastapi import Request

logger = logging.getLogger(__name__)


async def logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.perf_counter()

    logger.info(f"[REQ {request_id}] {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"[REQ {request_id}] Unhandled error")
        raise

    latency_ms = (time.perf_counter() - start) * 1000.0
    logger.info(f"[REQ {request_id}] {response.status_code} latency_ms={latency_ms:.1f}")
    response.headers["X-Request-ID"] = request_id
    return response

"""Request hooks for a FastAPI application that embeds the helpers.

Register them once at startup::

    app = FastAPI()
    register_middleware(app)

Requests are then logged with the proxy-aware client address, rejected
uploads become 400 responses carrying the upload message, and anything
unhandled becomes a JSON 500.
"""

import logging
import time
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import UploadError
from .network import get_client_ip
from .request import server_vars_from_request


logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
    return f"{int(time.time() * 1000)}-{id(request)}"


def request_client_ip(request: Request) -> str:
    return get_client_ip(server_vars_from_request(request)) or "unknown"


async def log_requests(request: Request, call_next: Callable):
    start_time = time.time()
    request_id = _request_id(request)
    client_ip = request_client_ip(request)

    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        # Only log slow requests (>1s) or errors
        if process_time > 1.0 or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} from {client_ip} - {response.status_code} - {process_time:.2f}s")
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"[{request_id}] {request.method} {request.url.path} from {client_ip} - ERROR: {str(e)} - {process_time:.2f}s")
        raise


async def upload_error_handler(request: Request, exc: UploadError):
    logger.warning(f"[{_request_id(request)}] Upload rejected from {request_client_ip(request)}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def global_exception_handler(request: Request, exc: Exception):
    request_id = _request_id(request)
    logger.error(f"[{request_id}] Unhandled exception in {request.method} {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_middleware(app: FastAPI) -> FastAPI:
    """Attach request logging and the upload/unhandled error handlers."""
    app.middleware("http")(log_requests)
    app.add_exception_handler(UploadError, upload_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    return app

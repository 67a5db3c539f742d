import logging
import os
import sys
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.config import settings

# Libraries whose INFO output drowns out request logs
QUIET_LOGGERS = ("uvicorn", "sqlalchemy", "httpx")

def setup_logging():
    """Configure the root logger from LOG_LEVEL and LOG_FILE and return the ``app`` logger."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        os.makedirs(Path(settings.LOG_FILE).parent, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("app")
    logger.setLevel(log_level)
    return logger

def describe_user(request: Request) -> str:
    """``id/role`` of the user resolved by authentication, or ``anonymous``."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        return "anonymous"
    return f"{user_id}/{request.state.user_role}"

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log one line when a request starts and one when it ends.

    The closing line carries the authenticated user id and role, which
    ``get_current_user`` stores on ``request.state`` once the token is
    verified. Responses with a 4xx or 5xx status are logged as warnings.
    Every response gets an ``X-Request-ID`` header matching the logged id.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger("app.request")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        started = time.perf_counter()
        request.state.request_id = request_id
        client: Optional[str] = request.client.host if request.client else None

        self.logger.debug(
            f"Request started: {request.method} {request.url.path} "
            f"[client: {client or 'unknown'}] [request_id: {request_id}]"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                f"Request failed: {request.method} {request.url.path} "
                f"[user: {describe_user(request)}] [error: {e}] [request_id: {request_id}]",
                exc_info=True
            )
            raise

        duration = time.perf_counter() - started
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        self.logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"[user: {describe_user(request)}] [duration: {duration:.3f}s] "
            f"[request_id: {request_id}]"
        )

        response.headers["X-Request-ID"] = request_id
        return response

def add_logging_middleware(app: FastAPI):
    """Add request logging middleware to the FastAPI app."""
    app.add_middleware(RequestLoggingMiddleware)

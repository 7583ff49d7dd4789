from __future__ import annotations
from dotenv import load_dotenv
load_dotenv()  # Load .env file before importing app modules

import time
import logging
import json
from contextlib import asynccontextmanager
from typing import Callable
import uvicorn
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from exporter.config import HOST, LOG_LEVEL, METRICS_PORT
from exporter.routes import router, get_service

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(levelname)s: %(name)s: %(message)s'
)

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Log each request and its response. Reads are polled by scrapers, so they
    log at DEBUG; commands log at INFO together with their JSON body.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        level = logging.DEBUG if request.method == "GET" else logging.INFO

        body = None
        if request.method == "POST":
            body_bytes = await request.body()
            try:
                body = json.loads(body_bytes) if body_bytes else None
            except json.JSONDecodeError:
                body = "<non-json body>"

            # Recreate request with body for downstream handlers
            async def receive():
                return {"type": "http.request", "body": body_bytes}
            request._receive = receive

        query_params = dict(request.query_params) if request.query_params else None
        logger.log(
            level,
            f"Request: {request.method} {request.url.path} | "
            f"IP: {client_ip} | "
            f"Query: {query_params} | "
            f"Body: {body if body else 'N/A'}"
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        if response.status_code >= 500:
            level = logging.WARNING
        logger.log(
            level,
            f"Response: {request.method} {request.url.path} | "
            f"Status: {response.status_code} | "
            f"Time: {process_time:.3f}s"
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = get_service()
    service.start()
    try:
        yield
    finally:
        service.stop()


def create_app() -> FastAPI:
    app = FastAPI(title="Sensor Exporter", version="0.1.0", lifespan=lifespan)
    app.add_middleware(LoggingMiddleware)
    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host=HOST, port=METRICS_PORT)

"""
Stack Tracker — baseline coverage and ConnectWise sync for managed-services customers.

Builds the FastAPI app: logging, startup migrations, routers, and the
structured error handlers.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import APP_VERSION
from .http_client import close_clients
from .logging_config import setup_logging
from .routers import catalog, connectwise, customers
from .schemas.errors import ErrorResponse
from .startup import run_startup_migrations


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    run_startup_migrations()
    logger.info(f"Stack Tracker {APP_VERSION} ready")
    yield
    await close_clients()


app = FastAPI(title="Stack Tracker", version=APP_VERSION, lifespan=lifespan)

app.include_router(catalog.router)
app.include_router(customers.router)
app.include_router(connectwise.router)


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id", "")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = ErrorResponse(
        error=str(exc.detail),
        status_code=exc.status_code,
        request_id=_request_id(request),
    )
    return JSONResponse(body.model_dump(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    body = ErrorResponse(
        error=detail[0]["msg"] if detail else "Invalid request",
        status_code=422,
        request_id=_request_id(request),
        detail=detail,
    )
    return JSONResponse(body.model_dump(), status_code=422)


@app.get("/health")
def health():
    return {"status": "ok", "version": APP_VERSION}

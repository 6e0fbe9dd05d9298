"""
FastAPI application entry point.

Wires the calculator and fitness routers, request logging and the error
mapping: APIException keeps its status, engine contract violations become
422, anything else is a logged 500. All error bodies share one shape:

    {"error": {"code": "...", "message": "..."}}
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers import fitness, vdot
from core.config import settings
from core.database import check_db_connection, init_db
from core.logging import setup_logging
from core.exceptions import APIException, FitnessEngineError
import logging
import time

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Fitness Estimation API",
    description="VDOT fitness estimation, training load and race prediction",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


@app.on_event("startup")
async def ensure_tables():
    if not settings.DB_CREATE_TABLES:
        return
    try:
        init_db()
    except Exception as e:
        logger.error(f"Table creation failed: {e}")
        raise


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One log line per request with status and elapsed time."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms} ms)",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": elapsed_ms,
            }
        }
    )
    response.headers["X-Process-Time-Ms"] = str(elapsed_ms)
    return response


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error_code or "API_ERROR", exc.detail),
        headers=exc.headers,
    )


@app.exception_handler(FitnessEngineError)
async def fitness_engine_exception_handler(request: Request, exc: FitnessEngineError):
    """Contract violations from the engine (bad effort, index out of range)."""
    logger.warning(
        f"Fitness engine rejected request: {exc}",
        extra={
            "extra_fields": {
                "path": request.url.path,
                "error_code": exc.error_code,
            }
        }
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(exc.error_code, str(exc)),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=True,
        extra={"extra_fields": {"path": request.url.path}},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("INTERNAL_ERROR", "Internal server error"),
    )


@app.get("/health")
async def health():
    """
    Readiness probe.

    Returns:
        - 200 when the database answers
        - 503 otherwise
    """
    database_ok = check_db_connection()
    body = {
        "status": "healthy" if database_ok else "unhealthy",
        "database": "ok" if database_ok else "unavailable",
        "environment": settings.ENVIRONMENT,
    }
    if not database_ok:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


@app.get("/ping")
async def ping():
    """Liveness probe; touches nothing."""
    return {"pong": True}


app.include_router(vdot.router)
app.include_router(fitness.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)

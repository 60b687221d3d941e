"""Contest judging API: routes, metrics and the embedded reconciliation worker"""

from datetime import datetime, timezone
from pathlib import Path
import logging
import time

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.config import settings
from portal.core.database import get_db, init_db
from portal.core.exceptions import BaseAPIException, JudgeError
from portal.api.v1 import contests, judge
from portal.services.judge_client import judge_client
from portal.services.judge_worker import judge_worker

_log_dir = Path(settings.get_log_file()).parent
_log_dir.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.get_log_file()),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "portal_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "portal_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
PENDING_GAUGE = Gauge("portal_pending_submissions", "Number of submissions awaiting a verdict")
WORKER_UP_GAUGE = Gauge("portal_judge_worker_up", "Judge worker liveness (1 running, 0 stopped)")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    REQUEST_COUNT.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path).observe(duration)

    # /run and /events hold the connection open while the judge works
    if duration > 1.0 and not path.endswith(("/run", "/events")):
        logger.warning("Slow request: %s %s took %.2fs", request.method, request.url.path, duration)

    return response


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.message,
            "details": exc.details,
            "path": request.url.path,
            "timestamp": _now(),
        }
    )


@app.exception_handler(JudgeError)
async def judge_exception_handler(request: Request, exc: JudgeError):
    """Judge failures surface as 502 with the judge's own status and body"""
    logger.error(
        f"Judge call failed on {request.method} {request.url.path}: "
        f"{exc.message} (upstream status {exc.upstream_status})"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.message,
            "upstream_status": exc.upstream_status,
            "body": exc.body,
            "path": request.url.path,
            "timestamp": _now(),
        }
    )


@app.on_event("startup")
async def startup_event():
    settings.validate_security_settings()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
    init_db()

    if settings.RUN_EMBEDDED_WORKER:
        judge_worker.start()
        WORKER_UP_GAUGE.set(1)


@app.on_event("shutdown")
async def shutdown_event():
    if judge_worker.is_running():
        await judge_worker.stop()
    await judge_client.aclose()
    WORKER_UP_GAUGE.set(0)
    logger.info(f"Shutting down {settings.APP_NAME}")


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Database reachability, worker state and the PENDING backlog"""
    db_ok = True
    db_error = None
    pending = 0
    try:
        db.execute(text("SELECT 1"))
        pending = judge_worker.queue_depth(db)
    except SQLAlchemyError as exc:
        db_ok = False
        db_error = str(exc)

    PENDING_GAUGE.set(pending)
    worker_status = judge_worker.status()
    WORKER_UP_GAUGE.set(1 if worker_status["running"] else 0)

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "timestamp": _now(),
        "readiness": {
            "database": {"ok": db_ok, "error": db_error},
            "worker": worker_status,
            "pending_submissions": pending,
        },
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(contests.router, prefix="/api/v1/contests", tags=["Contests"])
app.include_router(judge.router, prefix="/api/v1/judge", tags=["Judge"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "portal.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        # The reconciliation worker is in-process; keep a single server process.
        workers=1 if (settings.DEBUG or settings.RUN_EMBEDDED_WORKER) else settings.WORKERS
    )

import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root wherever uvicorn is started from
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from voucher_engine.admin import admin_router
from voucher_engine.api.vouchers import router as vouchers_router
from voucher_engine.core.config import settings
from voucher_engine.core.database import engine, init_db
from voucher_engine.core.rate_limit import limiter
from voucher_engine.logging import setup_logging
from voucher_engine.schemas import ErrorKind
from voucher_engine.services.catalog import CatalogUnavailable
from voucher_engine.services.validator import message_for

setup_logging(level=logging.INFO)
log = logging.getLogger("voucher_engine")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info("Voucher engine started: environment=%s currency=%s", settings.environment, settings.currency)
    yield


app = FastAPI(
    title="Voucher Engine",
    description="Multi-voucher validation and redemption API",
    lifespan=lifespan,
)
app.state.limiter = limiter


def _error_response(request: Request, status_code: int, detail: str, code: str | None = None) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"error": detail, "status_code": status_code}
    if code:
        body["code"] = code
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("Rate limit exceeded: path=%s detail=%s", request.url.path, exc.detail)
    return _error_response(request, 429, "Too many requests. Please wait a minute.")


def _validation_error_message(exc: RequestValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "Invalid request."
    first = errs[0]
    loc = list(first.get("loc") or [])
    field = str(loc[-1]) if len(loc) > 0 else None
    if first.get("type") == "missing":
        if field == "body":
            return "Request body is missing."
        if field:
            return f"Missing required field: {field}."
    return first.get("msg") or "Invalid request."


def _jsonable_errors(errs) -> list[dict]:
    # ctx may carry exception objects (model validators)
    return [{k: (str(v) if k == "ctx" else v) for k, v in e.items() if k != "url"} for e in errs]


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.info(
        "Request validation error (422): path=%s method=%s detail=%s",
        request.url.path,
        request.method,
        errs,
    )
    rid = getattr(request.state, "request_id", None)
    body = {"error": _validation_error_message(exc), "status_code": 422, "detail": _jsonable_errors(errs)}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=422, content=body)


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


@app.exception_handler(CatalogUnavailable)
def catalog_unavailable_handler(request: Request, exc: CatalogUnavailable) -> JSONResponse:
    return _error_response(
        request,
        503,
        message_for(ErrorKind.CatalogUnavailable),
        code=ErrorKind.CatalogUnavailable.value,
    )


@app.exception_handler(SQLAlchemyError)
def storage_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Outcome of a commit is unknown to the caller; retrying with the same order_id is safe
    log.exception("Storage error: path=%s %s", request.url.path, exc)
    return _error_response(request, 503, "Voucher storage is unavailable. Please retry.")


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc, exc_info=True)
    return _error_response(request, 500, "Unexpected server error.")


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(vouchers_router)
app.include_router(admin_router)


@app.get("/health")
def health():
    database = "ok"
    try:
        with Session(engine) as db:
            db.exec(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning("Health check database error: %s", e)
        database = "error"
    return {"status": "ok", "database": database}

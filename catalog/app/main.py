import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import repository
from .config import Settings, load_settings
from .db import create_db_engine, get_session, init_db, make_session_factory
from .errors import CatalogError, ConflictError, NotFoundError, ValidationError
from .logging_setup import setup_logging
from .schemas import ControllerStatus, MessageOut, ProductIn, ProductOut, ProductUpdate

APP_NAME = "catalog"

logger = logging.getLogger("catalog.api")

# ---- Prometheus metrics ----
REQS = Counter("http_requests_total", "Total HTTP requests", ["service", "path", "method", "status"])
LAT  = Histogram("http_request_duration_seconds", "Request latency", ["service", "path", "method"])

# Ids and offsets must fit a signed 64-bit column
MAX_ID = 2**63 - 1
MAX_PAGE = 2**31 - 1

router = APIRouter(prefix="/products", tags=["products"])


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def set_page_headers(response: Response, total: int, page: int, page_size: int) -> None:
    response.headers["X-Total-Count"] = str(total)
    response.headers["X-Page"] = str(page)
    response.headers["X-Page-Size"] = str(page_size)


@router.get("/test", response_model=ControllerStatus)
def controller_status():
    return ControllerStatus(message="Products controller is working", timestamp=datetime.now(timezone.utc))

@router.get("", response_model=List[ProductOut])
def list_products(
    response: Response,
    search: Optional[str] = None,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, alias="pageSize"),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    page_size = min(page_size, settings.max_page_size)
    rows, total = repository.list_products(session, search, page, page_size)
    set_page_headers(response, total, page, page_size)
    return rows

@router.get("/{pid}", response_model=ProductOut)
def get_product(pid: int = Path(..., ge=-MAX_ID - 1, le=MAX_ID), session: Session = Depends(get_session)):
    p = repository.get_product(session, pid)
    if not p:
        raise NotFoundError()
    return p

@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductIn, request: Request, response: Response, session: Session = Depends(get_session)):
    p = repository.create_product(session, payload)
    session.commit()
    logger.info("Created product %s", p.id)
    response.headers["Location"] = str(request.url_for("get_product", pid=p.id))
    return p

@router.put("/{pid}", response_model=ProductOut)
def update_product(
    payload: ProductUpdate,
    pid: int = Path(..., ge=-MAX_ID - 1, le=MAX_ID),
    session: Session = Depends(get_session),
):
    if payload.id != pid:
        raise ConflictError()
    p = repository.update_product(session, pid, payload)
    if p is None:
        raise NotFoundError()
    session.commit()
    logger.info("Updated product %s", pid)
    return p

@router.delete("/{pid}", response_model=MessageOut)
def delete_product(pid: int = Path(..., ge=-MAX_ID - 1, le=MAX_ID), session: Session = Depends(get_session)):
    if not repository.delete_product(session, pid):
        raise NotFoundError()
    session.commit()
    logger.info("Deleted product %s", pid)
    return MessageOut(message="Product deleted successfully")


def _field_errors(exc: RequestValidationError) -> dict:
    errors: dict = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        key = loc[-1] if loc else "body"
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        errors.setdefault(key, []).append(msg)
    return errors


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        return JSONResponse(status_code=exc.status_code or 500, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        err = ValidationError(_field_errors(exc))
        logger.info("Rejected %s %s: %s", request.method, request.url.path, err.errors)
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "A database error occurred while processing your request"},
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    engine = create_db_engine(settings)

    app = FastAPI(title=APP_NAME)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)

    # ---- Startup: ensure schema + tables exist (idempotent) ----
    @app.on_event("startup")
    def on_startup():
        init_db(engine, settings)
        logger.info("Catalog service ready (env=%s, prefix=%s)", settings.env, settings.api_prefix or "/")

    @app.on_event("shutdown")
    def on_shutdown():
        engine.dispose()

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        elapsed = time.time() - start
        REQS.labels(APP_NAME, request.url.path, request.method, response.status_code).inc()
        LAT.labels(APP_NAME, request.url.path, request.method).observe(elapsed)
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed * 1000)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=list(settings.exposed_headers),
    )

    register_error_handlers(app)

    @app.get("/health", response_class=PlainTextResponse)
    def health():
        return "ok"

    @app.get("/metrics")
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)

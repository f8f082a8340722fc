import logging
from typing import Any, Dict

import psycopg2
from dotenv import load_dotenv

load_dotenv()

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import app_context
from .app.auth import StaffContext, get_current_staff
from .app.membership import MembershipError, UnexpectedError
from .app.membership.schema import initialize_schema
from .app.routes.members import router as members_router
from .app.routes.plans import router as plans_router
from .app.routes.renewals import router as renewals_router
from .config import AppConfig, load_config
from .sweeper import get_sweeper_metrics, is_sweeper_running, shutdown_expiry_sweeper, start_expiry_sweeper

CONFIG: AppConfig = load_config()

logger = logging.getLogger("gym_backend.main")


def get_conn():
    return psycopg2.connect(**CONFIG.db_connect_kwargs())


app_context.configure(get_conn=get_conn, config=CONFIG)

app = FastAPI(title="Gym Membership API")

# Vite proxy origin by default
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(CONFIG.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(members_router)
app.include_router(renewals_router)
app.include_router(plans_router)


def _unexpected_response(error: UnexpectedError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=dict(error.payload))


@app.exception_handler(MembershipError)
async def handle_membership_error(request: Request, exc: MembershipError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Membership operation failed: %s", exc.message, extra={"path": request.url.path, "code": exc.code}
        )
    else:
        logger.info("Membership request rejected (%s): %s", exc.code, exc.message)
    http_exc = exc.to_http_exception()
    return JSONResponse(status_code=http_exc.status_code, content=http_exc.detail)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    content = exc.detail if isinstance(exc.detail, dict) else {"message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})


@app.exception_handler(psycopg2.Error)
async def handle_database_error(request: Request, exc: psycopg2.Error) -> JSONResponse:
    logger.exception("Database error while handling %s", request.url.path)
    return _unexpected_response(UnexpectedError("A database error occurred"))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while handling %s", request.url.path)
    return _unexpected_response(UnexpectedError("Internal server error"))


@app.on_event("startup")
def _startup() -> None:
    if CONFIG.db_init_schema:
        initialize_schema()
    if CONFIG.expiry_sweep_enabled:
        start_expiry_sweeper(interval_seconds=CONFIG.expiry_sweep_interval_seconds)
    else:
        logger.info("Membership expiry sweeper disabled by configuration")


@app.on_event("shutdown")
def _shutdown_expiry_sweeper() -> None:
    shutdown_expiry_sweeper()


@app.get("/api/health/sweeper")
def read_sweeper_metrics(staff: StaffContext = Depends(get_current_staff)) -> Dict[str, Any]:
    return {"running": is_sweeper_running(), **get_sweeper_metrics()}


# run: uvicorn gym_backend.main:app --host 127.0.0.1 --port 8000 --reload

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
import structlog

import invoicehub.models  # noqa: F401  registers every table on Base.metadata
from invoicehub.config import settings
from invoicehub.database import close_db, init_db
from invoicehub.errors import AppError
from invoicehub.jobs.scheduled import router as jobs_router
from invoicehub.logging_config import setup_logging
from invoicehub.middleware.correlation import CorrelationIdMiddleware
from invoicehub.middleware.idempotency import IdempotencyMiddleware
from invoicehub.routes.analytics import router as analytics_router
from invoicehub.routes.auth import router as auth_router
from invoicehub.routes.bank_accounts import router as bank_accounts_router
from invoicehub.routes.clients import router as clients_router
from invoicehub.routes.expenses import router as expenses_router
from invoicehub.routes.health import router as health_router
from invoicehub.routes.invoices import router as invoices_router
from invoicehub.routes.payments import router as payments_router
from invoicehub.routes.recurring_invoices import router as recurring_router
from invoicehub.routes.services import router as services_router
from invoicehub.routes.users import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("invoicehub_starting", env=settings.ENVIRONMENT, version=settings.APP_VERSION)
    await init_db()
    yield
    await close_db()
    logger.info("invoicehub_stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


def error_body(code: str, message: str, **extra) -> dict:
    return {"error": {"code": code, "message": message, **extra}}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log("request_rejected", code=exc.code, message=exc.message, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        content = detail if "error" in detail else {"error": detail}
    else:
        content = error_body("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold exception instances
    return [
        {k: (str(v) if k == "ctx" else v) for k, v in err.items() if k != "input"}
        for err in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=error_body(
            "VALIDATION_ERROR", "Request validation failed", details=jsonable_errors(exc)
        ),
    )


# Starlette runs the last-added middleware first
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Idempotency-Key", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-Idempotent-Replayed"],
)

ROUTERS = [
    (health_router, "", "System"),
    (auth_router, "/auth", "Auth"),
    (users_router, "/api/v1/users", "Users"),
    (clients_router, "/api/v1/clients", "Clients"),
    (services_router, "/api/v1/services", "Services"),
    (bank_accounts_router, "/api/v1/bank-accounts", "Bank Accounts"),
    (expenses_router, "/api/v1/expenses", "Expenses"),
    (invoices_router, "/api/v1/invoices", "Invoices"),
    (payments_router, "/api/v1/invoices", "Payments"),
    (recurring_router, "/api/v1/recurring-invoices", "Recurring Invoices"),
    (analytics_router, "/api/v1/analytics", "Analytics"),
    (jobs_router, "/internal/jobs", "Internal Jobs"),
]

for router, prefix, tag in ROUTERS:
    app.include_router(router, prefix=prefix, tags=[tag])

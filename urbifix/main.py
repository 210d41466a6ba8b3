from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from urbifix.api.middleware import RequestTimingMiddleware
from urbifix.api.v1.router import api_router
from urbifix.common.logging import get_logger, setup_logging
from urbifix.common.responses import error_body
from urbifix.config import settings
from urbifix.db.session import Database
from urbifix.integrations.storage import StorageClient

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    if getattr(app.state, "database", None) is None:
        app.state.database = Database(settings.DATABASE_URL, echo=settings.DB_ECHO)
    app.state.database.connect()
    logger.info("Urbi-Fix API starting (env=%s)", settings.APP_ENV)
    yield
    await app.state.database.dispose()


app = FastAPI(
    title="Urbi-Fix API",
    description="Civic issue reporting and local service marketplace",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimingMiddleware)

# Uploaded chat attachments
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

# API routes
app.include_router(api_router, prefix="/api")


# --- Error envelope ---


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    detail = [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg"), "type": e.get("type")}
        for e in errors
    ]
    return JSONResponse(status_code=400, content=error_body(message, detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("Server error"))


@app.get("/health")
async def health_check():
    checks = {"storage": await StorageClient().status()}
    return {
        "status": "healthy" if all(v == "ok" for v in checks.values()) else "degraded",
        "service": "urbifix",
        "version": "1.0.0",
        "env": settings.APP_ENV,
        "checks": checks,
    }

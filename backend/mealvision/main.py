import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import LOG_LEVEL
from mealvision.database import engine, Base
import mealvision.models
from mealvision.api import analyze, analyses, chat, stats
from mealvision.exceptions import ExternalServiceError, InputValidationError, MealVisionError

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


# Run Alembic migrations on startup
def run_migrations():
    """Run pending Alembic migrations, then make sure every table exists."""
    try:
        from alembic.config import Config
        from alembic import command
        alembic_cfg = Config(os.path.join(BACKEND_DIR, "alembic.ini"))
        alembic_cfg.set_main_option("script_location", os.path.join(BACKEND_DIR, "alembic"))
        alembic_cfg.attributes["configure_logger"] = False
        command.upgrade(alembic_cfg, "head")
        logger.info("[Alembic] Migrations applied successfully")
    except Exception as e:
        logger.error(f"[Alembic] Migration failed, falling back to create_all: {e}")

    logger.info("[Startup] Ensuring all tables exist via create_all...")
    Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"[Startup] Database: {engine.url.render_as_string(hide_password=True)}")
    run_migrations()
    yield


class PreflightCORSMiddleware(CORSMiddleware):
    """CORSMiddleware whose accepted preflights answer 204 No Content instead of 200 OK."""

    def preflight_response(self, request_headers):
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            key: value for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=204, headers=headers)


app = FastAPI(title="MealVision API", lifespan=lifespan)

app.add_middleware(
    PreflightCORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, error: str, details: str = "", headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details}, headers=headers)


@app.exception_handler(MealVisionError)
async def mealvision_error_handler(request: Request, exc: MealVisionError):
    if isinstance(exc, ExternalServiceError):
        # Upstream detail stays in the server log
        logger.error(f"[API] {request.method} {request.url.path} -> {exc.status_code} {type(exc).__name__}: {exc.details}")
        return _error_response(exc.status_code, exc.error)
    logger.info(f"[API] {request.method} {request.url.path} -> {exc.status_code} {type(exc).__name__}: {exc.details}")
    return _error_response(exc.status_code, exc.error, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return _error_response(InputValidationError.status_code, InputValidationError.error, details)


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return _error_response(InputValidationError.status_code, InputValidationError.error, str(exc))


app.include_router(analyze.router, tags=["Analyze"])
app.include_router(chat.router, tags=["Chat"])
app.include_router(analyses.router)
app.include_router(stats.router)


@app.get("/")
def root():
    return {"name": "MealVision API", "docs": "/docs"}


@app.get("/health")
def health():
    return {"status": "ok"}

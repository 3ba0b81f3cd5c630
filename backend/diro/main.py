import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

from .config import settings
from .database import translate_api_error
from .errors import AppError, AuthenticationError, ValidationError, describe_validation_errors
from .routes import admin, auth, campaigns, clips, payments, users
from .services import settlement_engine
from .services.settings_store import settings_store


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings_store.load()
    settlement_engine.start()
    yield
    settlement_engine.shutdown()


app = FastAPI(title="Diro Clipping Marketplace", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(campaigns.router, prefix="/campaigns", tags=["Campaigns"])
app.include_router(clips.router, prefix="/clips", tags=["Clips"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


def _error_response(exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages, fields = describe_validation_errors(exc.errors())
    return _error_response(ValidationError(*messages, fields=fields))


@app.exception_handler(APIError)
async def storage_error_handler(request: Request, exc: APIError):
    translated = translate_api_error(exc)
    if translated is not None:
        return _error_response(translated)
    logger.error(f"Storage error on {request.method} {request.url.path}: {exc.code} {exc.message}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "message": "Internal Server Error"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "message": "Internal Server Error"},
    )


@app.get("/health")
def health():
    return {"status": "ok", "service": "diro"}


@app.get("/")
def read_root():
    return {"message": "Welcome to the Diro API"}

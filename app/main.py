import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.core.exceptions import AppError
from app.database import Base, engine, get_async_session
from app.models import file, log as log_model, user  # noqa: F401  registers tables
from app.routes.auth import router as auth_router
from app.routes.files import router as file_router
from app.routes.logs import router as log_router
from app.routes.users import router as user_router
from app.tasks.celery_app import celery_app  # noqa: F401  binds shared tasks to the configured broker

logging.basicConfig(level=settings.LOG_LEVEL)
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(title="File Vault", lifespan=lifespan)

app.include_router(auth_router)
app.include_router(user_router)
app.include_router(file_router)
app.include_router(log_router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Something went wrong"})


@app.get("/")
async def root():
    return {"message": "File Vault API is running"}

@app.get("/test-db")
async def test_db(session: AsyncSession = Depends(get_async_session)):
    try:
        result = await session.execute(text("SELECT 1"))
        return {"db_connection": result.scalar()}
    except Exception:
        log.exception("Database check failed")
        return JSONResponse(status_code=503, content={"message": "Database unavailable"})

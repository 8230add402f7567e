"""
FastAPI application entry point for the CRO auditor.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cro_auditor.api.v1.router import api_router
from cro_auditor.config import configure_logging, settings
from cro_auditor.core.exceptions import InvalidDataSourcesError, InvalidTestKeyError
from cro_auditor.database import init_db
from cro_auditor.schemas.common import ErrorResponse
from cro_auditor.worker import celery_app


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_db()
    # Drop broker connections inherited from before the server forked
    celery_app.close()
    yield
    celery_app.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidDataSourcesError)
async def invalid_data_sources_handler(request: Request, exc: InvalidDataSourcesError):
    body = ErrorResponse(detail=str(exc), invalid=exc.invalid, allowed=exc.allowed)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


@app.exception_handler(InvalidTestKeyError)
async def invalid_test_key_handler(request: Request, exc: InvalidTestKeyError):
    body = ErrorResponse(detail=str(exc), invalid=[exc.test_key])
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.VERSION, "ai_enabled": settings.AI_ENABLED}

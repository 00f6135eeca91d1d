from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from database import engine
from models import Base
from routers import files as files_router
from dependencies import get_blob_store
from exceptions import DicomServiceError
from schemas import ProblemDetails
from logging_config import get_logger
from config import settings

logger = get_logger(__name__)

async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or already exist.")

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("DICOM Service starting up...")
    await create_db_and_tables()
    get_blob_store(settings).ensure_root()
    logger.info(f"Blob storage path configured at: {settings.STORAGE_BASE_PATH}")
    yield
    logger.info("DICOM Service shutting down...")
    await engine.dispose()

app = FastAPI(
    title="DICOM Service",
    version="0.1.0",
    lifespan=lifespan
)

@app.exception_handler(DicomServiceError)
async def dicom_service_error_handler(request: Request, exc: DicomServiceError):
    problem = ProblemDetails(title=exc.title, detail=exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json"
    )

app.include_router(files_router.router)

@app.get("/ping", tags=["Health"])
async def ping():
    return {"ping": "pong! from DICOM Service"}

@app.get("/", tags=["Root"])
async def read_root():
    return {"message": "Welcome to the DICOM Service API"}

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting DICOM Service on {settings.DICOM_SERVICE_HOST}:{settings.DICOM_SERVICE_PORT}")
    uvicorn.run("main:app", host=settings.DICOM_SERVICE_HOST, port=settings.DICOM_SERVICE_PORT, reload=True)

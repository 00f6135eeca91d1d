import uuid
from io import BytesIO
from typing import List, Optional

from fastapi import APIRouter, UploadFile, File, Depends, Query
from fastapi.responses import FileResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

import crud, models, schemas
from database import get_db
from dependencies import get_blob_store, get_dicom_parser
from dicom_parser import DicomParser
from exceptions import (
    BlobNotFoundError,
    BlobStoreError,
    FrameIndexError,
    InternalFailureError,
    InvalidInputError,
    InvalidTagError,
    NotFoundError,
    TagNotFoundError,
    UnsafeStoragePathError,
)
from logging_config import get_logger
from storage import LocalBlobStore, display_name

logger = get_logger(__name__)

router = APIRouter(
    prefix="/files",
    tags=["files"],
)

def _parse_file_id(file_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(file_id)
    except ValueError:
        logger.warning(f"Malformed file id requested: '{file_id}'")
        raise NotFoundError("File not found")

async def _get_record_or_404(db: AsyncSession, file_id: str) -> models.FileRecord:
    record = await crud.get_file_record_by_id(db, file_id=_parse_file_id(file_id))
    if record is None:
        logger.warning(f"File record not found: ID {file_id}")
        raise NotFoundError("File not found")
    return record

async def _read_blob(blob_store: LocalBlobStore, record: models.FileRecord) -> bytes:
    try:
        return await blob_store.read_bytes(record.storage_path)
    except (BlobNotFoundError, UnsafeStoragePathError) as e:
        logger.error(f"File record {record.id} exists but its blob is unavailable: {e}")
        raise NotFoundError("File not found", str(e))
    except (BlobStoreError, OSError):
        logger.exception(f"Error reading blob '{record.storage_path}' for file {record.id}")
        raise InternalFailureError("Internal server error", "An error occurred while reading the file")

def _parse_frame_index(frame: Optional[str], file_id: str) -> int:
    if frame is None:
        return 0
    try:
        return int(frame)
    except ValueError:
        logger.warning(f"Malformed frame index '{frame}' requested for file {file_id}")
        raise InvalidInputError("Invalid frame index", "Frame index must be an integer")

async def _is_empty(file: UploadFile) -> bool:
    if file.size is not None:
        return file.size == 0
    first_byte = await file.read(1)
    await file.seek(0)
    return not first_byte

@router.get("", response_model=List[schemas.FileSummary])
async def list_files(db: AsyncSession = Depends(get_db)):
    records = await crud.list_file_records(db)
    logger.info(f"Listing {len(records)} DICOM file(s)")
    return records

@router.post("", response_model=schemas.UploadResponse)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
    parser: DicomParser = Depends(get_dicom_parser)
):
    if file is None:
        logger.warning("Upload request without a file")
        raise InvalidInputError("File is required")

    try:
        logger.info(f"Upload request for filename: '{file.filename}', content_type: '{file.content_type}'")
        if await _is_empty(file):
            logger.warning(f"Rejected empty upload '{file.filename}'")
            raise InvalidInputError("File is required")

        if not await run_in_threadpool(parser.validate, file.file):
            logger.warning(f"Rejected upload '{file.filename}': not a valid DICOM file")
            raise InvalidInputError("Invalid DICOM file")

        await file.seek(0)
        try:
            storage_path = await blob_store.save(file, file.filename or "")
        except (BlobStoreError, OSError):
            logger.exception(f"Error saving upload '{file.filename}'")
            raise InternalFailureError("Internal server error", "An error occurred while saving the file")
    finally:
        await file.close()

    try:
        record = await crud.create_file_record(db, file_name=display_name(file.filename or ""), storage_path=storage_path)
    except SQLAlchemyError:
        logger.exception(f"Blob '{storage_path}' was stored but its metadata could not be recorded")
        await db.rollback()
        raise InternalFailureError("Internal server error", "An error occurred while recording the file")

    logger.info(f"Saved '{record.file_name}' (ID: {record.id}) as '{record.storage_path}'")
    return record

@router.get("/{file_id}", response_model=schemas.FileSummary)
async def get_file(file_id: str, db: AsyncSession = Depends(get_db)):
    return await _get_record_or_404(db, file_id)

@router.get("/{file_id}/header", response_model=schemas.HeaderResponse)
async def get_header(
    file_id: str,
    tag: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
    parser: DicomParser = Depends(get_dicom_parser)
):
    if tag is None or not tag.strip():
        raise InvalidInputError("Tag is required")

    logger.info(f"Header request for file_id: {file_id}, tag: {tag}")
    record = await _get_record_or_404(db, file_id)
    content = await _read_blob(blob_store, record)

    try:
        with BytesIO(content) as stream:
            value = await run_in_threadpool(parser.read_tag, stream, tag)
    except InvalidTagError as e:
        logger.warning(f"Invalid tag '{tag}' requested for file {file_id}")
        raise InvalidInputError("Invalid tag format", str(e))
    except TagNotFoundError as e:
        logger.warning(f"Tag '{tag}' not found in file {file_id}")
        raise NotFoundError("Tag not found", str(e))
    except Exception:
        logger.exception(f"Error reading tag '{tag}' from file {file_id}")
        raise InternalFailureError("Internal server error", "An error occurred while reading the DICOM header")

    return schemas.HeaderResponse(tag=tag, value=value)

@router.get("/{file_id}/image")
async def get_image(
    file_id: str,
    frame: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
    parser: DicomParser = Depends(get_dicom_parser)
):
    logger.info(f"Image request for file_id: {file_id}, frame: {frame}")
    record = await _get_record_or_404(db, file_id)
    content = await _read_blob(blob_store, record)

    with BytesIO(content) as stream:
        if not await run_in_threadpool(parser.validate, stream):
            logger.warning(f"Stored file {file_id} is not a valid DICOM file")
            raise InvalidInputError("Invalid DICOM file")

        try:
            dataset = await run_in_threadpool(parser.load, stream)
            total_frames = parser.frame_count(dataset)
        except Exception:
            logger.exception(f"Error loading DICOM dataset for file {file_id}")
            raise InternalFailureError("Internal server error", "An error occurred while loading the DICOM file")

    index = _parse_frame_index(frame, file_id)
    invalid_frame = InvalidInputError("Invalid frame index", f"Frame index must be between 0 and {total_frames - 1}")
    if index < 0 or index >= total_frames:
        logger.warning(f"Frame {index} out of range for file {file_id} ({total_frames} frame(s))")
        raise invalid_frame

    try:
        png = await run_in_threadpool(parser.render_frame, dataset, index)
    except FrameIndexError:
        raise invalid_frame
    except Exception:
        logger.exception(f"Error rendering frame {index} of file {file_id}")
        raise InternalFailureError("Internal server error", "An error occurred while rendering the DICOM image")

    return Response(content=png, media_type="image/png")

@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    db: AsyncSession = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store)
):
    logger.info(f"Download request for file_id: {file_id}")
    record = await _get_record_or_404(db, file_id)

    try:
        path_on_disk = blob_store.resolve(record.storage_path)
    except UnsafeStoragePathError as e:
        raise NotFoundError("File not found", str(e))

    if not path_on_disk.is_file():
        logger.error(f"File {file_id} found in DB (location: {record.storage_path}) but not in storage at {path_on_disk}")
        raise NotFoundError("File not found")

    return FileResponse(
        path=path_on_disk,
        filename=record.file_name,
        media_type="application/dicom"
    )

import uuid as py_uuid
from datetime import datetime, timezone
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

import models

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

async def create_file_record(db: AsyncSession, file_name: str, storage_path: str) -> models.FileRecord:
    db_record = models.FileRecord(
        file_name=file_name,
        storage_path=storage_path,
        uploaded_at=utcnow()
    )
    db.add(db_record)
    await db.commit()
    await db.refresh(db_record)
    return db_record

async def list_file_records(db: AsyncSession) -> List[models.FileRecord]:
    result = await db.execute(select(models.FileRecord).order_by(models.FileRecord.uploaded_at.desc()))
    return list(result.scalars().all())

async def get_file_record_by_id(db: AsyncSession, file_id: py_uuid.UUID) -> Optional[models.FileRecord]:
    result = await db.execute(select(models.FileRecord).filter(models.FileRecord.id == file_id))
    return result.scalars().first()

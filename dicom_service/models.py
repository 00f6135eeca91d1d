import uuid

from sqlalchemy import Column, String, DateTime, Uuid
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class FileRecord(Base):
    __tablename__ = "dicom_files"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    file_name = Column(String, nullable=False)
    storage_path = Column(String, nullable=False, unique=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, index=True)
    # Reserved for a precomputed preview image; nothing populates it yet.
    preview_path = Column(String, nullable=True)

    def __repr__(self):
        return f"<FileRecord(id={self.id}, name='{self.file_name}', path='{self.storage_path}')>"

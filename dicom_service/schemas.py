import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)

class FileSummary(CamelModel):
    id: uuid.UUID
    file_name: str
    uploaded_at: datetime

class UploadResponse(CamelModel):
    id: uuid.UUID
    file_name: str
    storage_path: str

class HeaderResponse(CamelModel):
    tag: str
    value: str

class ProblemDetails(CamelModel):
    title: str
    detail: Optional[str] = None

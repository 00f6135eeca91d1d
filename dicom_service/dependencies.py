from fastapi import Depends

from config import settings as global_app_settings, Settings
from dicom_parser import DicomParser, PydicomParser
from storage import LocalBlobStore

def get_settings() -> Settings:
    return global_app_settings

def get_blob_store(current_settings: Settings = Depends(get_settings)) -> LocalBlobStore:
    return LocalBlobStore(current_settings.STORAGE_BASE_PATH, chunk_size=current_settings.UPLOAD_CHUNK_SIZE)

def get_dicom_parser() -> DicomParser:
    return PydicomParser()

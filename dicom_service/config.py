from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path

env_path = Path(__file__).parent / ".env"

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./dicom_service.db"
    DICOM_SERVICE_HOST: str = "0.0.0.0"
    DICOM_SERVICE_PORT: int = 8000
    STORAGE_BASE_PATH: Path = Path("dicom-uploads")
    UPLOAD_CHUNK_SIZE: int = 1024 * 1024
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=env_path, extra='ignore')

settings = Settings()

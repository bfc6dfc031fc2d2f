import os
from dataclasses import dataclass
from typing import Dict

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Config:
    """Helper configuration loaded from environment variables.

    Provides validated access to the media storage backend (Supabase) and
    the location of installed plugins.
    """

    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")
    SUPABASE_BUCKET: str = os.getenv("SUPABASE_BUCKET", "media")
    ATTACHMENTS_TABLE: str = os.getenv("ATTACHMENTS_TABLE", "attachments")
    UPLOADS_PREFIX: str = os.getenv("UPLOADS_PREFIX", "uploads")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "production")

    PLUGINS_DIR: str = os.getenv("PLUGINS_DIR", "plugins")
    PLUGIN_FILE_EXTENSION: str = os.getenv("PLUGIN_FILE_EXTENSION", "php")

    MAX_UPLOAD_SIZE: int = int(os.getenv("MAX_UPLOAD_SIZE", str(10 * 1024 * 1024)))  # 10 MB

    @staticmethod
    def allowed_mime_types() -> Dict[str, str]:
        """Extension -> MIME type map accepted by the media library."""
        return {
            ".jpg": "image/jpeg",
            ".jpeg": "image/jpeg",
            ".png": "image/png",
            ".gif": "image/gif",
            ".webp": "image/webp",
            ".pdf": "application/pdf",
            ".txt": "text/plain",
            ".csv": "text/csv",
            ".zip": "application/zip",
            ".mp3": "audio/mpeg",
            ".mp4": "video/mp4",
        }

    @classmethod
    def validate(cls) -> None:
        if not cls.SUPABASE_URL:
            raise ValueError("SUPABASE_URL environment variable is required")
        if not cls.SUPABASE_SERVICE_KEY:
            raise ValueError("SUPABASE_SERVICE_KEY environment variable is required")

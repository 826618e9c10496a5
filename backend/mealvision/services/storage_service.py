import logging
from typing import Optional

from supabase import Client, create_client

from config import SUPABASE_BUCKET, SUPABASE_SERVICE_KEY, SUPABASE_URL
from mealvision.exceptions import StorageError

logger = logging.getLogger(__name__)


class SupabaseStorageService:
    """Uploads meal photos to a Supabase storage bucket and returns their public URL."""

    def __init__(self, client: Optional[Client] = None, bucket: str = SUPABASE_BUCKET):
        self._client = client
        self.bucket = bucket

    @property
    def client(self) -> Client:
        # Created on first use so the app boots without storage credentials
        if self._client is None:
            if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
                raise StorageError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
            self._client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
        return self._client

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        try:
            storage = self.client.storage.from_(self.bucket)
            storage.upload(
                path=path,
                file=data,
                file_options={"content-type": content_type},
            )
            public_url = storage.get_public_url(path)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"[Storage] Upload of {path} to bucket '{self.bucket}' failed: {e}", exc_info=True)
            raise StorageError(f"{type(e).__name__}: {e}") from e

        logger.info(f"[Storage] Uploaded {path} ({len(data)} bytes)")
        return public_url


_storage_service: Optional[SupabaseStorageService] = None


def get_storage_service() -> SupabaseStorageService:
    """FastAPI dependency; one client per process."""
    global _storage_service
    if _storage_service is None:
        _storage_service = SupabaseStorageService()
    return _storage_service

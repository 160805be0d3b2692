"""Media upload - push chat images to Supabase Storage and return a public URL."""

import mimetypes
import os
from pathlib import Path
from src.services.idempotency import generate_id
from src.services.supabase_client import SupabaseClient
from src.utils.errors import StoreUnavailable, TargetNotFound
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

MEDIA_BUCKET = os.environ.get("MEDIA_BUCKET", "message-images")


def build_object_path(owner_id: str, filename: str) -> str:
    """Storage path for an uploaded file, unique per upload."""
    suffix = Path(filename).suffix.lower() or ".jpg"
    return f"{owner_id}/{generate_id()}{suffix}"


async def upload_message_image(local_path: str, owner_id: str) -> str:
    """
    Upload a local image file and return its public URL.

    The URL is treated as an opaque string by the rest of the system.
    """
    path = Path(local_path)
    if not path.is_file():
        raise TargetNotFound(f"Image file not found: {local_path}")

    object_path = build_object_path(owner_id, path.name)
    content_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"

    async with SupabaseClient() as client:
        try:
            bucket = client.storage.from_(MEDIA_BUCKET)
            bucket.upload(object_path, path.read_bytes(), {"content-type": content_type})
            public_url = bucket.get_public_url(object_path)
        except Exception as e:
            raise StoreUnavailable(f"Failed to upload image: {e}") from e

    logger.info(
        "Uploaded message image",
        owner_id=mask_user_id(owner_id),
        bucket=MEDIA_BUCKET,
        object_path=object_path
    )
    return public_url

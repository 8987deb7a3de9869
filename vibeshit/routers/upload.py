import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from vibeshit.auth.token import get_current_user
from vibeshit.core.config import Settings
from vibeshit.core.exceptions import UploadRejected
from vibeshit.dependencies import get_app_settings, get_storage
from vibeshit.models.user import User
from vibeshit.utils.s3 import S3Storage, make_storage_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Upload"])


def _too_large(file: UploadFile, settings: Settings) -> UploadRejected:
    return UploadRejected(f"File {file.filename} exceeds the {settings.MAX_UPLOAD_SIZE_MB}MB limit")


@router.post("/upload")
async def upload_images(
    request: Request,
    user: User = Depends(get_current_user),
    storage: S3Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    """
    Store images under a fresh, never-reused key.

    Accepts any multipart fields whose name starts with ``file``. Parts that
    are not images are skipped; a single oversize image rejects the request.
    """
    form = await request.form()
    files = [value for key, value in form.multi_items() if key.startswith("file") and isinstance(value, UploadFile)]
    if not files:
        raise UploadRejected("No files uploaded")

    candidates = []
    for file in files:
        if not (file.content_type or "").startswith("image/"):
            logger.debug(f"Skipping non-image upload {file.filename} ({file.content_type})")
            continue
        # Spooled parts report their size; oversize ones are never read
        if file.size is not None and file.size > settings.max_upload_size_bytes:
            raise _too_large(file, settings)
        candidates.append(file)

    images = []
    for file in candidates:
        data = await file.read(settings.max_upload_size_bytes + 1)
        if len(data) > settings.max_upload_size_bytes:
            raise _too_large(file, settings)
        images.append((file, data))

    uploaded = []
    for file, data in images:
        filename, storage_path = make_storage_path(file.filename or "upload", settings.UPLOAD_PREFIX)
        # boto3 is blocking; keep it off the event loop
        await run_in_threadpool(storage.upload_bytes, data, storage_path, file.content_type)
        url = await run_in_threadpool(storage.resolve, storage_path)

        uploaded.append({
            "filename": filename,
            "url": url,
            "storagePath": storage_path,
            "originalName": file.filename,
            "size": len(data),
        })

    logger.info(f"User {user.id} uploaded {len(uploaded)} file(s)")
    return {"success": True, "files": uploaded}

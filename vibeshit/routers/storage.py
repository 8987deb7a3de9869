from typing import Any, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vibeshit.dependencies import get_storage
from vibeshit.utils.s3 import S3Storage

router = APIRouter(prefix="/api/storage", tags=["Storage"])


class SignedUrlsIn(BaseModel):
    paths: Any = None


class SignedUrlsOut(BaseModel):
    urls: dict[str, str | None]


@router.post("/signed-urls", response_model=SignedUrlsOut)
def create_signed_urls(payload: SignedUrlsIn, storage: S3Storage = Depends(get_storage)):
    # Each path is signed on its own; a failure only nulls that entry
    paths: List[str] = [p for p in payload.paths if isinstance(p, str)] if isinstance(payload.paths, list) else []
    return SignedUrlsOut(urls=storage.signed_urls(paths))

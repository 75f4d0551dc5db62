"""
Signed file downloads from blob storage
"""
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response
import mimetypes

from app.integrations import get_storage

files_router = APIRouter(prefix="/files", tags=["files"])


@files_router.get("/{path:path}")
async def download_file(
    path: str,
    expires: int = Query(...),
    signature: str = Query(...),
):
    storage = get_storage()
    if not storage.verify_signature(path, expires, signature):
        raise HTTPException(status_code=403, detail="Download link is invalid or has expired")
    content = storage.read(path)
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(content=content, media_type=media_type)

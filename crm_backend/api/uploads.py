from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from crm_backend.exceptions import NotFoundException
from crm_backend.services.attachment_storage import AttachmentStorage, get_attachment_storage

uploads_router = APIRouter()


@uploads_router.get("/{stored_name}")
async def get_upload(
    stored_name: str,
    storage: AttachmentStorage = Depends(get_attachment_storage),
):
    """Serve a stored attachment by its generated name."""
    if Path(stored_name).name != stored_name or stored_name.startswith("."):
        raise NotFoundException(detail="File not found")

    path = storage.upload_dir / stored_name
    if not path.is_file():
        raise NotFoundException(detail="File not found")

    return FileResponse(path)

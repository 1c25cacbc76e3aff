# =============================================================================
# personio/operations/documents.py  -  Document Operations
# =============================================================================
#
# list_document_categories   category lookup, cached like policies
# upload_document            file from the server's local filesystem
# upload_document_base64     inline content, for clients that cannot share
#                            a filesystem with the server
#
# Uploads go out as multipart/form-data.
# =============================================================================

import asyncio
import base64
import binascii
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from personio.cache import DOCUMENT_CATEGORIES_KEY
from personio.errors import ValidationError
from personio.operations.base import NoParams, operation


class UploadDocumentParams(BaseModel):
    employee_id: int
    category_id: int
    file_path: str = Field(min_length=1)
    file_name: Optional[str] = None


class UploadDocumentBase64Params(BaseModel):
    employee_id: int
    category_id: int
    file_content: str = Field(min_length=1)
    file_name: str = Field(min_length=1)


def _uploaded(raw: Optional[dict]) -> dict:
    document = raw or {}
    return {
        "success": True,
        "document": {
            "id": document.get("id"),
            "employee_id": document.get("employee_id"),
            "category": document.get("category"),
            "file_name": document.get("file_name"),
            "file_size": document.get("file_size"),
            "uploaded_at": document.get("uploaded_at"),
        },
        "message": "Document uploaded successfully",
    }


@operation("list_document_categories", NoParams)
async def list_document_categories(dispatcher, params: NoParams) -> dict:
    """List available document categories."""

    def transform(raw: list[dict]) -> dict:
        categories = [
            {
                "id": category.get("id"),
                "name": category.get("name"),
                "required": bool(category.get("required", False)),
            }
            for category in raw or []
        ]
        return {"categories": categories, "total": len(categories)}

    return await dispatcher.read(
        DOCUMENT_CATEGORIES_KEY,
        dispatcher.client.get_document_categories,
        transform,
        ttl=dispatcher.cache.ttl_config.policies,
    )


@operation("upload_document", UploadDocumentParams, mutation=True)
async def upload_document(dispatcher, params: UploadDocumentParams) -> dict:
    """Upload a document from the local filesystem to an employee profile."""
    path = Path(params.file_path)
    try:
        content = await asyncio.to_thread(path.read_bytes)
    except FileNotFoundError:
        raise ValidationError(f"File not found: {params.file_path}") from None
    except IsADirectoryError:
        raise ValidationError(f"Not a file: {params.file_path}") from None
    file_name = params.file_name or path.name

    return await dispatcher.mutate(
        lambda: dispatcher.client.upload_document(
            params.employee_id, params.category_id, content, file_name
        ),
        _uploaded,
    )


@operation("upload_document_base64", UploadDocumentBase64Params, mutation=True)
async def upload_document_base64(dispatcher, params: UploadDocumentBase64Params) -> dict:
    """Upload a base64-encoded document to an employee profile."""
    try:
        content = base64.b64decode(params.file_content, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("file_content is not valid base64") from None

    return await dispatcher.mutate(
        lambda: dispatcher.client.upload_document(
            params.employee_id, params.category_id, content, params.file_name
        ),
        _uploaded,
    )

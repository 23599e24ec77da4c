"""Upload API router.

Multipart bodies are streamed straight from the socket into object storage;
nothing is spooled to disk.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from s3upload.api.v1.deps import get_upload_service
from s3upload.api.v1.schemas.uploads import UploadFormOut
from s3upload.app.services.upload_service import ObjectNotManagedError, UploadService
from s3upload.engine.errors import (
    FieldUploadError,
    RemovalError,
    ResolutionError,
    TransformError,
)
from s3upload.engine.multipart import MultipartError

router = APIRouter()

_FIELD_ERROR_CODES: dict[type[FieldUploadError], str] = {
    ResolutionError: "resolution_failed",
    TransformError: "transform_failed",
}


def _field_error_code(exc: FieldUploadError) -> str:
    for error_type, code in _FIELD_ERROR_CODES.items():
        if isinstance(exc, error_type):
            return code
    return "upload_failed"


@router.post(
    "/uploads",
    response_model=UploadFormOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Upload files",
    description=(
        "Stream a multipart/form-data body into object storage. Text fields "
        "are echoed back; every file part is stored and described."
    ),
)
async def create_upload(
    request: Request,
    service: UploadService = Depends(get_upload_service),
) -> UploadFormOut:
    content_type = request.headers.get("content-type") or ""
    if not content_type.lower().startswith("multipart/form-data"):
        raise HTTPException(
            status_code=415, detail="Expected a multipart/form-data body"
        )

    try:
        form = await service.receive(content_type, request.stream(), context=request)
    except MultipartError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "error_code": "invalid_multipart"},
        ) from exc
    except FieldUploadError as exc:
        raise HTTPException(
            status_code=502,
            detail={
                "message": str(exc),
                "field": exc.fieldname,
                "error_code": _field_error_code(exc),
            },
        ) from exc

    return UploadFormOut.model_validate(
        {"fields": form.fields, "files": form.files}, from_attributes=True
    )


@router.delete(
    "/uploads/{bucket}/{key:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an uploaded object",
)
async def delete_upload(
    bucket: str,
    key: str,
    request: Request,
    service: UploadService = Depends(get_upload_service),
) -> Response:
    try:
        await service.remove(bucket, key, context=request)
    except ObjectNotManagedError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RemovalError as exc:
        raise HTTPException(
            status_code=502,
            detail={"message": str(exc), "error_code": "removal_failed"},
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)

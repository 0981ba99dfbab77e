import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from postgrest.exceptions import APIError
from starlette.concurrency import run_in_threadpool
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.audit import log_access_denied, log_image_delete, log_image_upload
from malawi_properties_service.config import Settings
from malawi_properties_service.crud import property_crud
from malawi_properties_service.dependencies import (
    can_manage_property,
    get_app_settings,
    get_object_storage,
    get_user_supabase_client,
    require_lister,
)
from malawi_properties_service.rate_limiting import UPLOAD_LIMIT, limiter
from malawi_properties_service.schemas.common_schemas import MessageResponse
from malawi_properties_service.schemas.records import Profile, UserType
from malawi_properties_service.schemas.storage_schemas import (
    DeleteImageRequest,
    DeleteImageResponse,
    UploadResponse,
)
from malawi_properties_service.storage import (
    ObjectStorage,
    StorageConfigurationError,
    StorageOperationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Storage"])

# Image keys are laid out as property-{id}/{file}
PROPERTY_PATH_PATTERN = re.compile(r"^property-([^/]+)/")


def is_unsafe_path(path: str) -> bool:
    return ".." in path or path.startswith("/")


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a property image",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": MessageResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": MessageResponse},
        status.HTTP_403_FORBIDDEN: {"model": MessageResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": MessageResponse},
    },
)
@limiter.limit(UPLOAD_LIMIT)
async def upload_image(
    request: Request,
    file: Optional[UploadFile] = File(None),
    path: Optional[str] = Form(None),
    profile: Profile = Depends(require_lister),
    storage: ObjectStorage = Depends(get_object_storage),
    app_settings: Settings = Depends(get_app_settings),
) -> UploadResponse:
    """
    Stores one image under ``path`` and returns its public URL.

    Validation happens before anything is sent to the object store: the
    destination must be relative without ``..``, the content type must be an
    allowed image type, and the body must fit the configured size limit.
    """
    if file is None or not path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File and path are required")

    if is_unsafe_path(path):
        logger.warning(f"Rejected upload path {path!r} from {profile.id}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid upload path")

    content_type = (file.content_type or "").lower()
    if content_type not in app_settings.UPLOAD_ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Only JPEG, PNG, WebP and GIF images are allowed",
        )

    data = await file.read()
    if len(data) > app_settings.UPLOAD_MAX_BYTES:
        max_mb = app_settings.UPLOAD_MAX_BYTES // (1024 * 1024)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum size is {max_mb}MB",
        )

    logger.info(f"Uploading {len(data)} bytes to {path} for {profile.id}")
    try:
        url = await run_in_threadpool(storage.upload_file, data, path, content_type)
    except (StorageConfigurationError, StorageOperationError) as e:
        logger.error(f"Upload to {path} failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    log_image_upload(request, profile.id, path, len(data), content_type)
    return UploadResponse(url=url)


@router.post(
    "/delete-image",
    response_model=DeleteImageResponse,
    summary="Delete a property image",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": MessageResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": MessageResponse},
        status.HTTP_403_FORBIDDEN: {"model": MessageResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": MessageResponse},
    },
)
async def delete_image(
    request: Request,
    body: DeleteImageRequest,
    profile: Profile = Depends(require_lister),
    storage: ObjectStorage = Depends(get_object_storage),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> DeleteImageResponse:
    path = storage.extract_path_from_url(body.image_url)
    if not path:
        logger.error(f"Could not extract a storage path from {body.image_url}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid image URL format")

    if profile.user_type != UserType.ADMIN:
        match = PROPERTY_PATH_PATTERN.match(path)
        allowed = False
        if match:
            try:
                listing = await property_crud.get_property(supabase, match.group(1))
                allowed = listing is not None and await can_manage_property(supabase, profile, listing)
            except APIError as e:
                logger.error(f"Error checking ownership of {path}: {e.message}")
                raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)
        if not allowed:
            log_access_denied(request, profile.id, f"Not the lister of image {path}")
            log_image_delete(request, profile.id, path, status="denied")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to delete this image",
            )

    try:
        await run_in_threadpool(storage.delete_file, path)
    except (StorageConfigurationError, StorageOperationError) as e:
        log_image_delete(request, profile.id, path, status="failure", detail=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    log_image_delete(request, profile.id, path)
    return DeleteImageResponse(success=True, path=path)

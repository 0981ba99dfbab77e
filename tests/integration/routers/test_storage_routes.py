import pytest
from fastapi import status
from httpx import AsyncClient

from malawi_properties_service.config import Settings
from malawi_properties_service.dependencies import get_app_settings
from malawi_properties_service.main import app as fastapi_app
from malawi_properties_service.schemas.records import UserType
from malawi_properties_service.storage import StorageConfigurationError, StorageOperationError
from tests.fixtures.helpers import make_profile, property_row

JPEG = ("front.jpg", b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg")
IMAGE_URL = "https://cdn.test/property-p1/front.jpg"


@pytest.fixture
def one_megabyte_limit():
    fastapi_app.dependency_overrides[get_app_settings] = lambda: Settings(UPLOAD_MAX_BYTES=1024 * 1024)
    yield
    fastapi_app.dependency_overrides.pop(get_app_settings, None)


# --- Upload ---


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["../etc/passwd", "/etc/passwd", "property-p1/../../secrets.jpg"])
async def test_upload_rejects_unsafe_paths(client: AsyncClient, mock_storage, login_as, path):
    login_as(make_profile(UserType.OWNER))

    response = await client.post("/api/upload", files={"file": JPEG}, data={"path": path})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid upload path"
    mock_storage.upload_file.assert_not_called()


@pytest.mark.asyncio
async def test_upload_requires_file_and_path(client: AsyncClient, mock_storage, login_as):
    login_as(make_profile(UserType.OWNER))

    response = await client.post("/api/upload", data={"path": "property-p1/front.jpg"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "File and path are required"
    mock_storage.upload_file.assert_not_called()


@pytest.mark.asyncio
async def test_upload_rejects_non_images(client: AsyncClient, mock_storage, login_as):
    login_as(make_profile(UserType.AGENT))

    response = await client.post(
        "/api/upload",
        files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        data={"path": "property-p1/notes.pdf"},
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"].startswith("Invalid file type")
    mock_storage.upload_file.assert_not_called()


@pytest.mark.asyncio
async def test_upload_rejects_oversized_files(client: AsyncClient, mock_storage, login_as, one_megabyte_limit):
    login_as(make_profile(UserType.OWNER))

    response = await client.post(
        "/api/upload",
        files={"file": ("big.png", b"x" * (1024 * 1024 + 1), "image/png")},
        data={"path": "property-p1/big.png"},
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "File too large. Maximum size is 1MB"
    mock_storage.upload_file.assert_not_called()


@pytest.mark.asyncio
async def test_upload_returns_public_url(client: AsyncClient, mock_storage, login_as):
    login_as(make_profile(UserType.OWNER))

    response = await client.post("/api/upload", files={"file": JPEG}, data={"path": "property-p1/front.jpg"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"url": IMAGE_URL}
    mock_storage.upload_file.assert_called_once_with(JPEG[1], "property-p1/front.jpg", "image/jpeg")


@pytest.mark.asyncio
async def test_buyers_cannot_upload(client: AsyncClient, mock_storage, login_as):
    login_as(make_profile(UserType.BUYER))

    response = await client.post("/api/upload", files={"file": JPEG}, data={"path": "property-p1/front.jpg"})

    assert response.status_code == status.HTTP_403_FORBIDDEN
    mock_storage.upload_file.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        StorageOperationError("Upload failed: AccessDenied"),
        StorageConfigurationError("Storage credentials are not configured"),
    ],
)
async def test_upload_storage_failure_is_500(client: AsyncClient, mock_storage, login_as, error):
    login_as(make_profile(UserType.OWNER))
    mock_storage.upload_file.side_effect = error

    response = await client.post("/api/upload", files={"file": JPEG}, data={"path": "property-p1/front.jpg"})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == str(error)


# --- Delete ---


@pytest.mark.asyncio
async def test_delete_rejects_unrecognised_url(client: AsyncClient, mock_storage, login_as):
    login_as(make_profile(UserType.OWNER))
    mock_storage.extract_path_from_url.side_effect = lambda url: None

    response = await client.post("/api/delete-image", json={"imageUrl": "https://elsewhere.example/x.jpg"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid image URL format"
    mock_storage.delete_file.assert_not_called()


@pytest.mark.asyncio
async def test_delete_by_listing_owner(client: AsyncClient, mock_supabase_client, mock_storage, login_as):
    # Arrange
    owner = make_profile(UserType.OWNER)
    login_as(owner)
    mock_supabase_client.queue("properties", property_row(id="p1", owner_id=owner.id))

    # Act
    response = await client.post("/api/delete-image", json={"imageUrl": IMAGE_URL})

    # Assert
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "path": "property-p1/front.jpg"}
    mock_storage.delete_file.assert_called_once_with("property-p1/front.jpg")
    assert mock_supabase_client.queries("properties")[0].called("eq") == [(("id", "p1"), {})]


@pytest.mark.asyncio
async def test_delete_by_another_lister_is_403(client: AsyncClient, mock_supabase_client, mock_storage, login_as):
    login_as(make_profile(UserType.OWNER))
    mock_supabase_client.queue("properties", property_row(id="p1", owner_id="someone-else"))

    response = await client.post("/api/delete-image", json={"imageUrl": IMAGE_URL})

    assert response.status_code == status.HTTP_403_FORBIDDEN
    mock_storage.delete_file.assert_not_called()


@pytest.mark.asyncio
async def test_delete_outside_listing_folders_is_403(client: AsyncClient, mock_storage, login_as):
    login_as(make_profile(UserType.AGENT))

    response = await client.post("/api/delete-image", json={"imageUrl": "https://cdn.test/avatars/me.jpg"})

    assert response.status_code == status.HTTP_403_FORBIDDEN
    mock_storage.delete_file.assert_not_called()


@pytest.mark.asyncio
async def test_admin_deletes_any_image(client: AsyncClient, mock_supabase_client, mock_storage, login_as):
    login_as(make_profile(UserType.ADMIN))

    response = await client.post("/api/delete-image", json={"imageUrl": "https://cdn.test/avatars/me.jpg"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["path"] == "avatars/me.jpg"
    assert mock_supabase_client.executed == []


@pytest.mark.asyncio
async def test_delete_storage_failure_is_500(client: AsyncClient, mock_storage, login_as):
    login_as(make_profile(UserType.ADMIN))
    mock_storage.delete_file.side_effect = StorageOperationError("Delete failed: NoSuchBucket")

    response = await client.post("/api/delete-image", json={"imageUrl": IMAGE_URL})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == "Delete failed: NoSuchBucket"

import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from models.photo import Photo
from services.errors import InvalidInputError
from services.storage import build_upload_filename, validate_image_upload


USER_ID = "photo-user"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


async def _photo_count(session_maker) -> int:
    async with session_maker() as session:
        result = await session.execute(select(func.count()).select_from(Photo))
        return result.scalar()


def test_validate_image_upload_rules():
    validate_image_upload("image/png", 1024, 10 * 1024 * 1024)
    validate_image_upload("IMAGE/JPEG", 10 * 1024 * 1024, 10 * 1024 * 1024)

    with pytest.raises(InvalidInputError, match="Invalid file type"):
        validate_image_upload("text/plain", 10, 10 * 1024 * 1024)
    with pytest.raises(InvalidInputError, match="Maximum size allowed is 10MB"):
        validate_image_upload("image/png", 10 * 1024 * 1024 + 1, 10 * 1024 * 1024)


def test_build_upload_filename_keeps_extension():
    first = build_upload_filename("../../holiday.JPG")
    second = build_upload_filename("holiday.JPG")
    assert first.startswith("upload-")
    assert first.endswith(".jpg")
    assert "/" not in first
    assert first != second
    assert build_upload_filename("no-extension").endswith(".png")


@pytest.mark.asyncio
async def test_upload_stores_file_and_records_photo(api_client, session_maker, upload_root, auth_for):
    headers = auth_for(USER_ID)
    response = await api_client.post(
        "/upload-image",
        files={"file": ("portrait.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["name"] == "portrait.png"
    assert payload["size"] == len(PNG_BYTES)
    assert payload["url"].startswith("http://test/uploads/upload-")

    stored = list(upload_root.iterdir())
    assert len(stored) == 1
    assert stored[0].read_bytes() == PNG_BYTES
    assert payload["url"].endswith(stored[0].name)

    photos = (await api_client.get("/photos", headers=headers)).json()["photos"]
    assert [photo["id"] for photo in photos] == [payload["id"]]
    assert photos[0]["restored"] is False
    assert await _photo_count(session_maker) == 1


@pytest.mark.asyncio
async def test_upload_rejects_oversized_file(api_client, session_maker, upload_root, auth_for):
    response = await api_client.post(
        "/upload-image",
        files={"file": ("huge.jpg", b"\xff" * (15 * 1024 * 1024), "image/jpeg")},
        headers=auth_for(USER_ID),
    )
    assert response.status_code == 400
    assert "File too large" in response.json()["error"]
    assert not upload_root.exists() or list(upload_root.iterdir()) == []
    assert await _photo_count(session_maker) == 0


@pytest.mark.asyncio
async def test_upload_rejects_non_image(api_client, session_maker, upload_root, auth_for):
    response = await api_client.post(
        "/upload-image",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=auth_for(USER_ID),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid file type. Only image files are allowed."
    assert not upload_root.exists()
    assert await _photo_count(session_maker) == 0


@pytest.mark.asyncio
async def test_upload_without_file(api_client, auth_for):
    response = await api_client.post("/upload-image", headers=auth_for(USER_ID))
    assert response.status_code == 400
    assert response.json()["error"] == "No file provided"


@pytest.mark.asyncio
async def test_upload_requires_session(api_client, upload_root):
    response = await api_client.post(
        "/upload-image",
        files={"file": ("portrait.png", PNG_BYTES, "image/png")},
    )
    assert response.status_code == 401
    assert not upload_root.exists()


@pytest.mark.asyncio
async def test_create_photo_requires_fields(api_client, auth_for):
    response = await api_client.post("/photos", json={"name": "a.jpg"}, headers=auth_for(USER_ID))
    assert response.status_code == 400
    assert response.json()["error"] == "name, url, and size are required"


@pytest.mark.asyncio
async def test_photos_are_listed_newest_first_per_owner(api_client, auth_for):
    headers = auth_for(USER_ID)
    for index in range(3):
        response = await api_client.post(
            "/photos",
            json={"id": f"p{index}", "name": f"{index}.jpg", "url": f"https://img.test/{index}.jpg", "size": 100},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["success"] is True

    await api_client.post(
        "/photos",
        json={"name": "other.jpg", "url": "https://img.test/other.jpg", "size": 5},
        headers=auth_for("someone-else"),
    )

    photos = (await api_client.get("/photos", headers=headers)).json()["photos"]
    assert [photo["id"] for photo in photos] == ["p2", "p1", "p0"]
    assert all(photo["userId"] == USER_ID for photo in photos)


@pytest.mark.asyncio
async def test_delete_photo_is_owner_scoped(api_client, session_maker, auth_for):
    owner = auth_for(USER_ID)
    created = await api_client.post(
        "/photos",
        json={"id": "keep-me", "name": "a.jpg", "url": "https://img.test/a.jpg", "size": 1},
        headers=owner,
    )
    assert created.status_code == 200

    response = await api_client.delete("/photos", params={"id": "keep-me"}, headers=auth_for("intruder"))
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert await _photo_count(session_maker) == 1

    response = await api_client.delete("/photos", params={"id": "keep-me"}, headers=owner)
    assert response.status_code == 200
    assert await _photo_count(session_maker) == 0


@pytest.mark.asyncio
async def test_delete_photo_requires_id(api_client, auth_for):
    response = await api_client.delete("/photos", headers=auth_for(USER_ID))
    assert response.status_code == 400
    assert response.json()["error"] == "Photo ID is required"

"""Media upload validation and asset-host interaction."""

from fastapi.testclient import TestClient

from presskit.features.media.service import MAX_FILE_SIZE
from presskit.main import create_app


def _upload(client, account, epk, files, kind="image"):
    return client.post(
        f"/api/v1/epks/{epk['id']}/media",
        params={"type": kind},
        files=files,
        headers=account["headers"],
    )


def test_upload_image_appends_to_photos(client, register_user, create_epk, assets):
    account = register_user()
    epk = create_epk(account)
    resp = _upload(client, account, epk, [("files", ("cover.jpg", b"\xff\xd8jpeg", "image/jpeg"))])
    assert resp.status_code == 200
    photos = resp.json()["data"]["photos"]
    assert len(photos) == 1
    assert photos[0]["publicId"].startswith(f"presskit-test/epk/{epk['id']}/")
    assert photos[0]["url"].startswith("https://")
    assert photos[0]["name"] == "cover.jpg"
    assert len(assets.uploads) == 1


def test_upload_audio_appends_to_music(client, register_user, create_epk):
    account = register_user()
    epk = create_epk(account)
    files = [
        ("files", ("intro.mp3", b"ID3a", "audio/mpeg")),
        ("files", ("outro.flac", b"fLaC", "audio/flac")),
    ]
    resp = _upload(client, account, epk, files, kind="audio")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [m["name"] for m in data["music"]] == ["intro.mp3", "outro.flac"]
    assert data["photos"] == []


def test_oversize_file_is_rejected_before_any_upload(client, register_user, create_epk, assets):
    account = register_user()
    epk = create_epk(account)
    files = [
        ("files", ("small.png", b"png", "image/png")),
        ("files", ("huge.png", b"\0" * (MAX_FILE_SIZE + 1), "image/png")),
    ]
    resp = _upload(client, account, epk, files)
    assert resp.status_code == 400
    assert resp.json()["error"] == "File too large. Maximum size is 25MB"
    assert assets.uploads == []


def test_unsupported_type_is_rejected(client, register_user, create_epk, assets):
    account = register_user()
    epk = create_epk(account)
    resp = _upload(client, account, epk, [("files", ("notes.txt", b"hello", "text/plain"))])
    assert resp.status_code == 400
    assert resp.json()["error"] == "File type not supported"
    assert assets.uploads == []


def test_too_many_files(client, register_user, create_epk):
    account = register_user()
    epk = create_epk(account)
    files = [("files", (f"shot{i}.jpg", b"jpeg", "image/jpeg")) for i in range(11)]
    resp = _upload(client, account, epk, files)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Too many files. Maximum is 10 files"


def test_no_files(client, register_user, create_epk):
    account = register_user()
    epk = create_epk(account)
    resp = client.post(f"/api/v1/epks/{epk['id']}/media", params={"type": "image"}, headers=account["headers"])
    assert resp.status_code == 400
    assert resp.json()["error"] == "Please upload a file"


def test_non_owner_cannot_upload(client, register_user, create_epk, assets):
    epk = create_epk(register_user())
    stranger = register_user()
    resp = _upload(client, stranger, epk, [("files", ("cover.jpg", b"jpeg", "image/jpeg"))])
    assert resp.status_code == 403
    assert resp.json()["error"] == "Not authorized to modify this EPK"
    assert assets.uploads == []


def test_asset_host_failure_is_a_fixed_500(client, register_user, create_epk, assets):
    account = register_user()
    epk = create_epk(account)
    assets.fail = True
    resp = _upload(client, account, epk, [("files", ("cover.jpg", b"jpeg", "image/jpeg"))])
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to upload file"


def test_delete_media_removes_item(client, register_user, create_epk, assets):
    account = register_user()
    epk = create_epk(account)
    uploaded = _upload(client, account, epk, [("files", ("cover.jpg", b"jpeg", "image/jpeg"))]).json()["data"]
    public_id = uploaded["photos"][0]["publicId"]

    resp = client.request(
        "DELETE",
        f"/api/v1/epks/{epk['id']}/media",
        json={"publicId": public_id, "type": "image"},
        headers=account["headers"],
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["photos"] == []
    assert assets.deleted == [public_id]


def test_delete_unknown_media_is_404(client, register_user, create_epk, assets):
    account = register_user()
    epk = create_epk(account)
    resp = client.request(
        "DELETE",
        f"/api/v1/epks/{epk['id']}/media",
        json={"publicId": "presskit-test/epk/missing.jpg", "type": "image"},
        headers=account["headers"],
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "Media not found"
    assert assets.deleted == []


def test_deleting_epk_purges_its_assets(client, register_user, create_epk, assets):
    account = register_user()
    epk = create_epk(account)
    _upload(client, account, epk, [("files", ("cover.jpg", b"jpeg", "image/jpeg"))])
    _upload(client, account, epk, [("files", ("intro.mp3", b"ID3", "audio/mpeg"))], kind="audio")

    client.delete(f"/api/v1/epks/{epk['id']}", headers=account["headers"])
    assert sorted(assets.deleted) == sorted(u["public_id"] for u in assets.uploads)


def test_uploads_without_asset_host_are_503(settings, engine, cache, mailer):
    app = create_app(settings, engine=engine, cache=cache, mailer=mailer)
    client = TestClient(app)
    register = client.post(
        "/api/v1/auth/register",
        json={"email": "solo@example.com", "username": "solo", "password": "Str0ng!Pass"},
    )
    headers = {"Authorization": f"Bearer {register.json()['data']['token']}"}
    epk = client.post("/api/v1/epks", json={"title": "No Storage"}, headers=headers).json()["data"]

    resp = client.post(
        f"/api/v1/epks/{epk['id']}/media",
        params={"type": "image"},
        files=[("files", ("cover.jpg", b"jpeg", "image/jpeg"))],
        headers=headers,
    )
    assert resp.status_code == 503
    assert resp.json()["error"] == "Media storage is not configured"

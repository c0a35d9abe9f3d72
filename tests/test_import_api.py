import io
import json

from tagshelf.models import ImportJob

HTML_EXPORT = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<TITLE>Bookmarks</TITLE>
<DL><p>
    <DT><H3>Dev</H3>
    <DL><p>
        <DT><A HREF="https://docs.python.org" ADD_DATE="1600000000">Python docs</A>
        <DT><A HREF="https://flask.palletsprojects.com" TAGS="web">Flask</A>
    </DL><p>
    <DT><A HREF="https://news.example">News</A>
</DL><p>
"""


def _native(rows):
    return json.dumps({"bookmarks": rows})


def test_health_is_public(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_import_requires_authentication(client):
    response = client.post("/api/v1/import", json={"format": "json", "content": "[]"})
    assert response.status_code == 401
    assert client.get("/api/v1/import/formats").status_code == 401


def test_token_rejects_bad_credentials(client, user):
    response = client.post(
        "/api/v1/auth/token", json={"username": user["username"], "password": "nope"}
    )
    assert response.status_code == 401


def test_import_formats_lists_every_parser(client, auth):
    response = client.get("/api/v1/import/formats", headers=auth)
    assert response.status_code == 200
    formats = {item["format"]: item for item in response.get_json()["items"]}
    assert set(formats) == {"html", "markdown", "json", "tmarks"}
    assert ".html" in formats["html"]["file_extensions"]


def test_validate_reports_summary(client, auth):
    response = client.post(
        "/api/v1/import/validate",
        headers=auth,
        json={"format": "html", "content": HTML_EXPORT},
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["valid"] is True
    assert body["errors"] == []
    assert body["summary"]["total_items"] == 3
    assert body["summary"]["total_tags"] == 2


def test_validate_reports_invalid_urls(client, auth):
    response = client.post(
        "/api/v1/import/validate",
        headers=auth,
        json={"format": "markdown", "content": "- [Broken](not a url)"},
    )
    body = response.get_json()
    assert response.status_code == 200
    assert body["valid"] is False
    assert body["errors"][0]["field"] == "bookmarks[0].url"
    assert body["errors"][0]["message"] == "Invalid URL format"
    assert body["errors"][0]["code"] == "INVALID_URL"


def test_validate_rejects_unknown_format(client, auth):
    response = client.post(
        "/api/v1/import/validate",
        headers=auth,
        json={"format": "csv", "content": "a,b"},
    )
    assert response.status_code == 400


def test_import_json_and_read_job(client, auth):
    rows = [
        {"title": "A", "url": "https://a.example", "tags": ["python"]},
        {"title": "B", "url": "https://b.example"},
    ]
    response = client.post(
        "/api/v1/import",
        headers=auth,
        json={"format": "json", "content": _native(rows)},
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] == 2
    assert body["failed"] == 0
    assert body["total"] == 2
    assert body["job"]["status"] == "done"

    job = client.get(f"/api/v1/import/jobs/{body['job']['id']}", headers=auth)
    details = job.get_json()
    assert details["total_created"] == 2
    assert details["processed_items"] == 2
    assert details["errors"] == []

    listing = client.get("/api/v1/bookmarks", headers=auth).get_json()["items"]
    tags_by_url = {item["url"]: item["tags"] for item in listing}
    assert tags_by_url == {
        "https://a.example": ["python"],
        "https://b.example": ["uncategorized"],
    }


def test_import_options_are_honored(client, auth):
    rows = [{"title": "A", "url": "https://a.example", "tags": ["python"]}]
    payload = {"format": "json", "content": _native(rows)}
    client.post("/api/v1/import", headers=auth, json=payload)

    payload["options"] = {"skip_duplicates": False}
    body = client.post("/api/v1/import", headers=auth, json=payload).get_json()
    assert body["failed"] == 1
    assert body["errors"][0]["code"] == "DUPLICATE_URL"
    assert body["job"]["error_message"] == "1 bookmarks failed to import."


def test_import_parse_failure_marks_job_failed(client, app, auth):
    response = client.post(
        "/api/v1/import",
        headers=auth,
        json={"format": "json", "content": "{broken"},
    )
    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "parse failed"
    assert body["job"]["status"] == "failed"

    with app.app_context():
        job = ImportJob.query.one()
        assert job.status == "failed"
        assert job.error_message.startswith("JSON parsing failed")


def test_import_validation_failure_imports_nothing(client, auth):
    rows = [
        {"title": "Good", "url": "https://good.example"},
        {"title": "Bad", "url": "no scheme here"},
    ]
    response = client.post(
        "/api/v1/import",
        headers=auth,
        json={"format": "json", "content": _native(rows)},
    )
    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "validation failed"
    assert body["errors"][0]["field"] == "bookmarks[1].url"
    assert body["job"]["status"] == "failed"
    assert client.get("/api/v1/bookmarks", headers=auth).get_json()["items"] == []


def test_import_rejects_missing_or_unknown_format(client, auth):
    missing = client.post("/api/v1/import", headers=auth, json={"format": "json"})
    assert missing.status_code == 400
    unknown = client.post(
        "/api/v1/import", headers=auth, json={"format": "opml", "content": "<opml/>"}
    )
    assert unknown.status_code == 400
    assert "Unsupported import format" in unknown.get_json()["error"]


def test_import_multipart_upload(client, auth):
    response = client.post(
        "/api/v1/import",
        headers=auth,
        data={
            "format": "html",
            "folder_as_tag": "false",
            "file": (io.BytesIO(HTML_EXPORT.encode("utf-8")), "bookmarks.html"),
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] == 3

    tags = client.get("/api/v1/tags", headers=auth).get_json()["items"]
    assert sorted(tag["name"] for tag in tags) == ["uncategorized", "web"]


def test_deleted_bookmark_is_revived_on_reimport(client, auth):
    rows = [{"title": "A", "url": "https://a.example", "tags": ["first"]}]
    first = client.post(
        "/api/v1/import",
        headers=auth,
        json={"format": "json", "content": _native(rows)},
    ).get_json()
    bookmark_id = first["created_bookmarks"][0]

    deleted = client.delete(f"/api/v1/bookmarks/{bookmark_id}", headers=auth)
    assert deleted.get_json()["status"] == "recycled"

    rows[0]["tags"] = ["second"]
    second = client.post(
        "/api/v1/import",
        headers=auth,
        json={"format": "json", "content": _native(rows)},
    ).get_json()
    assert second["success"] == 1
    assert second["created_bookmarks"] == [bookmark_id]

    listing = client.get("/api/v1/bookmarks", headers=auth).get_json()["items"]
    assert [(item["id"], item["tags"]) for item in listing] == [
        (bookmark_id, ["second"])
    ]


def test_import_multipart_upload_in_declared_legacy_encoding(client, auth):
    export = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=GBK">
<DL><p>
    <DT><H3>编程</H3>
    <DL><p>
        <DT><A HREF="https://gbk.example/">中文书签</A>
    </DL><p>
</DL><p>
"""
    response = client.post(
        "/api/v1/import",
        headers=auth,
        data={
            "format": "html",
            "file": (io.BytesIO(export.encode("gbk")), "bookmarks.html"),
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.get_json()["success"] == 1

    listing = client.get("/api/v1/bookmarks", headers=auth).get_json()["items"]
    assert listing[0]["title"] == "中文书签"
    assert listing[0]["tags"] == ["编程"]

from __future__ import annotations

from bs4 import UnicodeDammit
from flask import current_app, g, jsonify, request

from tagshelf.api import api_bp
from tagshelf.extensions import db
from tagshelf.models import ApiToken, Bookmark, ImportJob, Tag, User, utcnow
from tagshelf.services.common import to_bool
from tagshelf.services.import_jobs import (
    create_import_job,
    default_import_options,
    fail_import_job,
    finish_import_job,
    get_import_job_details,
    parse_import_content,
    perform_import,
    validate_import_data,
)
from tagshelf.services.importers import (
    FORMAT_INFO,
    SUPPORTED_IMPORT_FORMATS,
    ImportOptions,
    ImportParseError,
    UnsupportedFormatError,
)
from tagshelf.services.security import api_auth_required
from tagshelf.services.store import SqlAlchemyBookmarkStore


def _decode_upload(raw: bytes) -> str:
    """Decode an uploaded export, honoring its BOM or declared charset."""
    dammit = UnicodeDammit(raw, known_definite_encodings=["utf-8"], is_html=True)
    if dammit.unicode_markup is None:
        raise ImportParseError("Could not detect the file encoding")
    return dammit.unicode_markup


def _read_import_request() -> tuple[str, str | None, dict]:
    """Accept JSON ``{format, content, options}`` or a multipart upload."""
    upload = request.files.get("file")
    if upload:
        max_bytes = int(current_app.config["IMPORT_MAX_CONTENT_BYTES"])
        raw = upload.read(max_bytes + 1)
        if len(raw) > max_bytes:
            raise ValueError("uploaded file is too large")
        content = _decode_upload(raw)
        return (request.form.get("format") or "").strip(), content, dict(request.form)

    payload = request.get_json(silent=True) or {}
    options = payload.get("options")
    return (
        (payload.get("format") or "").strip(),
        payload.get("content"),
        options if isinstance(options, dict) else {},
    )


def _import_options(raw: dict) -> ImportOptions:
    return ImportOptions.from_dict(raw, default_import_options(current_app.config))


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "TagShelf"})


@api_bp.route("/auth/token", methods=["POST"])
def create_token_with_credentials():
    payload = request.get_json(silent=True) or {}
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    token_name = (payload.get("token_name") or "TagShelf API Token").strip()

    user = User.query.filter_by(username=username).first()
    if not user or not user.is_active or not user.check_password(password):
        return jsonify({"error": "invalid credentials"}), 401

    token, token_hash = ApiToken.issue_token()
    row = ApiToken(user_id=user.id, name=token_name, token_hash=token_hash)
    db.session.add(row)
    db.session.commit()
    return jsonify({"token": token, "token_name": token_name, "user_id": user.id})


@api_bp.route("/tags", methods=["GET"])
@api_auth_required
def tags_list():
    user = g.api_user
    tags = (
        Tag.query.filter_by(user_id=user.id)
        .filter(Tag.deleted_at.is_(None))
        .order_by(Tag.name.asc())
        .all()
    )
    return jsonify({"items": [tag.as_dict() for tag in tags]})


@api_bp.route("/bookmarks", methods=["GET"])
@api_auth_required
def bookmarks_list_api():
    user = g.api_user
    include_deleted = to_bool(request.args.get("include_deleted"), default=False)
    query = Bookmark.query.filter_by(user_id=user.id)
    if not include_deleted:
        query = query.filter(Bookmark.deleted_at.is_(None))
    items = query.order_by(Bookmark.id.asc()).all()
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["DELETE"])
@api_auth_required
def bookmarks_delete_api(bookmark_id: int):
    user = g.api_user
    bookmark = Bookmark.query.filter_by(id=bookmark_id, user_id=user.id).first()
    if not bookmark:
        return jsonify({"error": "bookmark not found"}), 404

    bookmark.deleted_at = utcnow()
    db.session.commit()
    return jsonify({"status": "recycled", "bookmark": bookmark.as_dict()})


@api_bp.route("/import/formats", methods=["GET"])
@api_auth_required
def import_formats():
    return jsonify(
        {
            "items": [
                {"format": fmt, "supported": True, **FORMAT_INFO[fmt]}
                for fmt in SUPPORTED_IMPORT_FORMATS
            ]
        }
    )


@api_bp.route("/import/validate", methods=["POST"])
@api_auth_required
def import_validate_api():
    try:
        fmt, content, raw_options = _read_import_request()
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 413
    except ImportParseError as exc:
        return jsonify({"error": "parse failed", "message": str(exc)}), 400
    if not fmt or content is None:
        return jsonify({"error": "format and content are required"}), 400

    options = _import_options(raw_options)
    try:
        data = parse_import_content(fmt, content, options)
    except UnsupportedFormatError as exc:
        return jsonify({"error": str(exc)}), 400
    except ImportParseError as exc:
        return jsonify({"error": "parse failed", "message": str(exc)}), 400

    validation = validate_import_data(fmt, data)
    payload = validation.as_dict()
    payload["summary"] = {
        "total_items": data.metadata.total_items,
        "total_tags": len(data.tags),
        "parsed_at": data.metadata.parsed_at,
    }
    return jsonify(payload)


@api_bp.route("/import", methods=["POST"])
@api_auth_required
def import_api():
    user = g.api_user
    try:
        fmt, content, raw_options = _read_import_request()
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 413
    except ImportParseError as exc:
        return jsonify({"error": "parse failed", "message": str(exc)}), 400
    if not fmt or not content:
        return jsonify({"error": "format and content are required"}), 400
    if fmt.lower() not in SUPPORTED_IMPORT_FORMATS:
        return jsonify({"error": f"Unsupported import format: {fmt}"}), 400

    options = _import_options(raw_options)
    job = create_import_job(user.id, fmt.lower())

    try:
        data = parse_import_content(fmt, content, options)
    except ImportParseError as exc:
        fail_import_job(job, str(exc))
        payload = {"error": "parse failed", "message": str(exc), "job": job.as_dict()}
        return jsonify(payload), 400

    validation = validate_import_data(fmt, data)
    if not validation.valid:
        fail_import_job(job, "Validation failed")
        payload = {"error": "validation failed", **validation.as_dict()}
        payload["job"] = job.as_dict()
        return jsonify(payload), 400

    result = perform_import(
        SqlAlchemyBookmarkStore(),
        user.id,
        data,
        options,
        uncategorized_tag=current_app.config["IMPORT_UNCATEGORIZED_TAG"],
    )
    finish_import_job(job, result)
    payload = result.as_dict()
    payload["warnings"] = [issue.as_dict() for issue in validation.warnings]
    payload["job"] = job.as_dict()
    return jsonify(payload)


@api_bp.route("/import/jobs/<int:job_id>", methods=["GET"])
@api_auth_required
def import_job_status(job_id: int):
    user = g.api_user
    job = ImportJob.query.filter_by(id=job_id, user_id=user.id).first()
    if not job:
        return jsonify({"error": "job not found"}), 404
    return jsonify(get_import_job_details(job))

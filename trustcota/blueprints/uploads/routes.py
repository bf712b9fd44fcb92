"""
Spreadsheet Upload Routes.

- POST /api/upload/quotation-spreadsheet   (multipart field "file")
- POST /api/upload/supplier-quotations     (multipart field "file")

Rules:
- .xlsx / .xlsm / .csv only; size capped by MAX_CONTENT_LENGTH (413).
- Row problems never fail the upload: they come back in errors / skippedRows.
- Supplier e-mails that failed are named in the X-Side-Effects-Failed header.
"""

from __future__ import annotations

from typing import Tuple

from flask import Blueprint, jsonify, request

from ...errors import ValidationError
from ...ingestion.importer import import_requisitions, import_supplier_quotations
from ...security import load_actor, require_capability
from ...services.lifecycle import get_lifecycle
from ...storage import get_storage

uploads_bp = Blueprint("uploads", __name__, url_prefix="/api/upload")


def _uploaded_file() -> Tuple[str, bytes]:
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded (expected multipart field 'file')")
    content = upload.read()
    if not content:
        raise ValidationError("Uploaded file is empty")
    return upload.filename, content


@uploads_bp.route("/quotation-spreadsheet", methods=["POST"])
@require_capability("uploads.requests")
def upload_requisitions():
    filename, content = _uploaded_file()
    result = import_requisitions(get_storage(), load_actor(), filename, content)
    return jsonify(result.to_dict())


@uploads_bp.route("/supplier-quotations", methods=["POST"])
@require_capability("uploads.quotations")
def upload_supplier_quotations():
    filename, content = _uploaded_file()
    result = import_supplier_quotations(get_storage(), get_lifecycle(), load_actor(), filename, content)
    response = jsonify(result.to_dict(include_updated=True))
    failed = sorted({r.name for r in result.failed_side_effects})
    if failed:
        response.headers["X-Side-Effects-Failed"] = ",".join(failed)
    return response

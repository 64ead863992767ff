import mimetypes
from io import BytesIO

from flask import Blueprint, send_file

from .object_store import get_object_store

files_bp = Blueprint("files", __name__, url_prefix="/files")


@files_bp.route("/<token>", methods=["GET"])
def download(token):
    """Serve a stored object for a signed, unexpired link."""
    store = get_object_store()
    path = store.resolve_token(token)
    data = store.read(path)
    mimetype = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return send_file(
        BytesIO(data),
        mimetype=mimetype,
        as_attachment=True,
        download_name=path.rsplit("/", 1)[-1],
    )

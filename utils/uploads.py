import os
import secrets

from flask import current_app
from werkzeug.utils import secure_filename


def upload_size(storage) -> int:
    stream = storage.stream
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


def has_content(storage) -> bool:
    return storage is not None and bool(storage.filename) and upload_size(storage) > 0


def store_document(storage, booking_id: int, question_id: int) -> str:
    """
    Saves an uploaded answer document under UPLOAD_FOLDER and returns the
    stored path: booking id, question id and a random prefix, then the
    sanitized client filename.
    """
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)

    name = secure_filename(storage.filename or "") or "document"
    path = os.path.join(folder, f"{booking_id}-{question_id}-{secrets.token_hex(8)}-{name}")
    storage.save(path)
    return path


def discard_documents(paths) -> None:
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

"""Content-addressed identifiers for media assets."""
import hashlib
from pathlib import Path

CHUNK_SIZE = 1024 * 1024


def content_id_for_bytes(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def content_id_for_file(path) -> str:
    """Hash a file on disk without loading it into memory."""
    digest = hashlib.sha1()
    with open(Path(path), "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def content_id_for_upload(djangofile) -> str:
    """Hash a Django UploadedFile; rewinds it afterwards so it can still be saved."""
    digest = hashlib.sha1()
    for chunk in djangofile.chunks():
        digest.update(chunk)
    djangofile.seek(0)
    return digest.hexdigest()

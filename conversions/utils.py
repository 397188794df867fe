import logging
import os
from pathlib import Path
from uuid import uuid4

from django.conf import settings

logger = logging.getLogger(__name__)


def save_uploaded_file(djangofile) -> str:
    """Save to MEDIA_ROOT/uploads/<uuid>_<name> and return relative path."""
    uploads_dir = Path(settings.MEDIA_ROOT) / "uploads"
    uploads_dir.mkdir(parents=True, exist_ok=True)
    safe_name = f"{uuid4().hex}_{os.path.basename(djangofile.name)}"
    dest = uploads_dir / safe_name
    with open(dest, "wb") as f:
        for chunk in djangofile.chunks():
            f.write(chunk)
    # return path relative to MEDIA_ROOT
    return str(dest.relative_to(settings.MEDIA_ROOT))


def local_path(rel_path: str) -> Path:
    return Path(settings.MEDIA_ROOT) / rel_path


def release_local_copy(rel_path: str) -> bool:
    """Delete a staged upload. Missing files count as released."""
    if not rel_path:
        return True
    try:
        local_path(rel_path).unlink(missing_ok=True)
        return True
    except OSError as e:
        logger.warning("Could not delete staged upload %s: %s", rel_path, e)
        return False


def display_name(filename: str) -> str:
    """Upload filename without directory or extension."""
    return Path(os.path.basename(filename)).stem[:255]

import json
import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_WIDTH = 1920
MAX_HEIGHT = 1080


def probe_media(path: Path, timeout: int = 60) -> dict:
    """
    Run ffprobe once on a new asset and keep what the transcoder needs.
    Returns {} when ffprobe is missing or cannot read the file.
    """
    cmd = [
        "ffprobe",
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    try:
        proc = subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=timeout)
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        logger.warning("ffprobe failed for %s: %s", path, e)
        return {}

    try:
        info = json.loads(proc.stdout.decode("utf-8", errors="ignore") or "{}")
    except ValueError:
        return {}

    meta = {}
    duration = info.get("format", {}).get("duration")
    if duration is not None:
        try:
            meta["duration"] = float(duration)
        except ValueError:
            pass
    for stream in info.get("streams", []):
        if stream.get("codec_type") == "video":
            meta["width"] = int(stream.get("width") or 0)
            meta["height"] = int(stream.get("height") or 0)
            break
    return meta


def mp4_output_resolution(width, height) -> str | None:
    """Cap at 1080p keeping the aspect ratio; both sides rounded up to even numbers."""
    if not width or not height:
        return None
    width, height = int(width), int(height)
    if height > MAX_HEIGHT or width > MAX_WIDTH:
        aspect = width / height
        if aspect > MAX_WIDTH / MAX_HEIGHT:
            width = MAX_WIDTH
            height = round(MAX_WIDTH / aspect)
        else:
            height = MAX_HEIGHT
            width = round(MAX_HEIGHT * aspect)
    if width % 2:
        width += 1
    if height % 2:
        height += 1
    return f"{width},{height}"

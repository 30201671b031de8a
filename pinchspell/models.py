"""
Hand landmarker model sources.

Local candidates are plain files; remote candidates are downloaded once into
the model cache and reused afterwards.
"""
import logging
from pathlib import Path
from typing import List
from urllib.parse import urlparse

import requests

from .config import ModelCandidate, ModelsConfig
from .errors import AssetError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 8192  # bytes
USER_AGENT = "PinchSpell/0.1"


def is_remote(location: str) -> bool:
    return urlparse(location).scheme in ("http", "https")


def get_model_cache_dir(cfg: ModelsConfig) -> Path:
    """Return the model cache directory, creating it if needed."""
    cache_dir = Path(cfg.cache_dir).expanduser()
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def remote_locations(cfg: ModelsConfig) -> List[str]:
    return [c.location for c in cfg.candidates if is_remote(c.location)]


def resolve_model(candidate: ModelCandidate, cfg: ModelsConfig, base_dir: Path) -> Path:
    """
    Turn a model candidate into a local file path.

    Args:
        candidate: The candidate to resolve
        cfg: Models configuration (cache dir, download timeout)
        base_dir: Directory that relative local paths are resolved against

    Returns:
        Path to an existing model file

    Raises:
        AssetError: If the file is missing or the download fails
    """
    if not is_remote(candidate.location):
        path = Path(candidate.location).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        if not path.is_file():
            raise AssetError(f"Model '{candidate.name}' not found", str(path))
        return path

    filename = Path(urlparse(candidate.location).path).name or "hand_landmarker.task"
    dest_path = get_model_cache_dir(cfg) / f"{candidate.name}-{filename}"
    if dest_path.is_file():
        logger.info(f"Using cached model: {dest_path}")
        return dest_path

    logger.info(f"Downloading model '{candidate.name}' from {candidate.location}")
    try:
        _download_model(candidate.location, dest_path, cfg.download_timeout_s)
    except (requests.RequestException, OSError) as e:
        raise AssetError(f"Model '{candidate.name}' download failed", str(e)) from e
    logger.info(f"Model downloaded: {dest_path}")
    return dest_path


def _download_model(url: str, dest_path: Path, timeout: float) -> None:
    """Stream a model file to a temp file, then move it into place."""
    temp_path = dest_path.with_suffix(".tmp")
    try:
        with requests.get(url, stream=True, timeout=timeout, headers={"User-Agent": USER_AGENT}) as response:
            response.raise_for_status()
            with open(temp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        temp_path.replace(dest_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()

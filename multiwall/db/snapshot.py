import json
from pathlib import Path

import httpx
from pydantic import ValidationError

from multiwall.bases.models import ConfigSnapshot
from multiwall.db.file_db import StorageError
from multiwall.logger import get_logger

log = get_logger(__name__)


async def load_snapshot(
    source: str | Path, *, timeout: float = 5.0
) -> ConfigSnapshot:
    """
    Read a config snapshot once, from a JSON file or an http(s) URL.

    Raises:
        StorageError: the source cannot be read or does not hold a snapshot.
    """
    text = str(source)
    if text.startswith(("http://", "https://")):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(text)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StorageError(f"Failed to fetch snapshot from {text}: {e}") from e
    else:
        try:
            with open(Path(text), "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read snapshot {text}: {e}") from e

    try:
        snapshot = ConfigSnapshot.model_validate(data)
    except ValidationError as e:
        raise StorageError(f"Invalid snapshot from {text}: {e}") from e
    log.debug(f"Loaded snapshot with {len(snapshot.ad_groups)} group(s) from {text}")
    return snapshot

import shutil
from pathlib import Path

from pydantic import ValidationError

from .constants import CACHE_DIR
from .helpers import read_json, write_json
from .logger import Logger
from .models import Playlist
from .utils import slugify


class Cache:
    """Serialized playlists, one JSON file each, so a rerun can resume any stage."""

    directory: Path = CACHE_DIR

    @classmethod
    def path_for(cls, playlist_id: str) -> Path:
        return cls.directory / f"{slugify(playlist_id)}.json"

    @classmethod
    def load(cls, playlist_id: str) -> Playlist | None:
        path = cls.path_for(playlist_id)
        if not path.exists():
            return None

        try:
            return Playlist.model_validate(read_json(path))
        except (ValueError, ValidationError) as e:
            Logger.warning(f"Ignoring unreadable cache {path}: {e}")
            return None

    @classmethod
    def save(cls, playlist: Playlist) -> Path:
        cls.directory.mkdir(parents=True, exist_ok=True)
        path = cls.path_for(playlist.id)
        write_json(path, playlist.model_dump(mode="json"))
        return path

    @classmethod
    def clear(cls) -> None:
        shutil.rmtree(cls.directory, ignore_errors=True)

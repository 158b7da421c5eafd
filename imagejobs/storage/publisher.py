"""Publish capability: copy a local output under the uploads root."""

import os
import shutil

from imagejobs.errors import PublishError


class LocalPublisher:
    """Durable storage on the local filesystem, served under /uploads."""

    def __init__(self, uploads_dir: str, base_url: str):
        self._uploads_dir = os.path.abspath(uploads_dir)
        self._base_url = base_url.rstrip("/")
        os.makedirs(self._uploads_dir, exist_ok=True)

    @property
    def root(self) -> str:
        return self._uploads_dir

    def _path_for(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self._uploads_dir, key))
        if os.path.commonpath([path, self._uploads_dir]) != self._uploads_dir:
            raise PublishError(f"Storage key escapes uploads root: {key}")
        return path

    def store(self, local_path: str, key: str) -> str:
        """Copy `local_path` to `key` and return its public URL."""
        dest = self._path_for(key)
        try:
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.copyfile(local_path, dest)
        except OSError as exc:
            raise PublishError(f"Failed to store {key}: {exc}") from exc
        return f"{self._base_url}/uploads/{key}"

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        if os.path.exists(path):
            os.remove(path)

"""On-disk storage for the files one server is responsible for."""

from __future__ import annotations

import io
import os
import tarfile
from collections.abc import Iterable
from pathlib import Path

from .protocol import extension_of, resolve


class FileStore:
    """Files of one extension kept under ``<home>/<server>``."""

    def __init__(self, home: str | os.PathLike, server: str, extension: str):
        self.home = Path(home)
        self.server = server
        self.extension = extension

    @property
    def root(self) -> Path:
        return self.home / self.server

    def path_for(self, virtual_path: str) -> Path:
        """Return the local path for a ``~Sn/...`` virtual path."""
        return resolve(self.home, virtual_path)

    def save(self, virtual_path: str, chunks: Iterable[bytes]) -> Path:
        """Write ``chunks`` to the file, creating parent directories."""
        path = self.path_for(virtual_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as handle:
            for chunk in chunks:
                handle.write(chunk)
        return path

    def read(self, virtual_path: str) -> bytes:
        """Return the contents of a stored file."""
        return self.path_for(virtual_path).read_bytes()

    def delete(self, virtual_path: str) -> None:
        """Remove a stored file; raises OSError if it cannot be removed."""
        os.remove(self.path_for(virtual_path))

    def list_names(self, virtual_path: str) -> list[str]:
        """Names of regular files with this store's extension in a directory."""
        directory = self.path_for(virtual_path)
        try:
            entries = list(os.scandir(directory))
        except OSError:
            return []
        return [
            entry.name
            for entry in entries
            if entry.is_file(follow_symlinks=False)
            and extension_of(entry.name) == self.extension
        ]

    def build_tar(self) -> bytes:
        """Tar every matching file under the root; empty bytes if there is none."""
        if not self.root.is_dir():
            return b""
        members = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames.sort()
            for name in sorted(filenames):
                full = Path(dirpath) / name
                if name.endswith(self.extension) and full.is_file() and not full.is_symlink():
                    members.append(full)
        if not members:
            return b""
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w", format=tarfile.GNU_FORMAT) as archive:
            for full in members:
                arcname = "./" + full.relative_to(self.root).as_posix()
                archive.add(full, arcname=arcname, recursive=False)
        return buffer.getvalue()
"""Wire format, command parsing and path mapping shared by every tierfs node."""

from __future__ import annotations

import os
import socket
import struct
from dataclasses import dataclass
from pathlib import Path

BUFSIZE = 1024
MAIN_PORT = 7010
BACKEND_HOST = "127.0.0.1"
LOCAL_EXTENSION = ".c"

_SIZE = struct.Struct("<q")

_ARITY = {
    "uploadf": 2,
    "downlf": 1,
    "removef": 1,
    "downltar": 1,
    "dispfnames": 1,
}


class ProtocolError(Exception):
    """Raised for malformed commands, unsupported types and broken transfers."""


@dataclass(frozen=True)
class Command:
    """A parsed request: its name and its whitespace-separated arguments."""

    name: str
    args: tuple[str, ...]


@dataclass(frozen=True)
class BackendInfo:
    """Where files of one extension are kept."""

    name: str
    extension: str
    port: int
    tar_name: str


BACKENDS = (
    BackendInfo("S2", ".pdf", 7100, "pdf.tar"),
    BackendInfo("S3", ".txt", 7200, "text.tar"),
    BackendInfo("S4", ".zip", 7300, "zip.tar"),
)


def home_dir() -> str:
    """Return $HOME, falling back to the account's home directory."""
    home = os.environ.get("HOME")
    if home:
        return home
    import pwd

    return pwd.getpwuid(os.getuid()).pw_dir


def parse_command(text: str) -> Command:
    """Parse a request line such as ``uploadf a.c ~S1/dir``."""
    name, sep, rest = text.partition(" ")
    arity = _ARITY.get(name)
    if not sep or arity is None:
        raise ProtocolError("Invalid command.")
    args = rest.split()
    if len(args) < arity:
        raise ProtocolError(f"{name} expects {arity} argument(s)")
    return Command(name, tuple(args[:arity]))


def extension_of(name: str) -> str | None:
    """Return everything from the last dot of ``name``, or None if it has none."""
    index = name.rfind(".")
    if index < 0:
        return None
    return name[index:]


def backend_for(extension: str | None) -> BackendInfo:
    """Return the backend that stores files with ``extension``."""
    for info in BACKENDS:
        if info.extension == extension:
            return info
    raise ProtocolError("Unsupported file type.")


def backend_path(virtual_path: str, info: BackendInfo) -> str:
    """Rewrite a ``~S1/...`` path to the matching ``~Sn/...`` backend path."""
    return f"~{info.name}{virtual_path[3:]}"


def resolve(home: str | os.PathLike, virtual_path: str) -> Path:
    """Map ``~S1/dir/file`` to ``<home>/S1/dir/file``."""
    if not virtual_path:
        raise ProtocolError("empty path")
    return Path(f"{os.fspath(home)}/{virtual_path[1:]}")


def encode_size(size: int) -> bytes:
    """Encode a file size as the eight-byte signed header."""
    return _SIZE.pack(size)


def decode_size(data: bytes) -> int:
    """Decode an eight-byte size header."""
    if len(data) != _SIZE.size:
        raise ProtocolError(f"size header must be {_SIZE.size} bytes, got {len(data)}")
    return _SIZE.unpack(data)[0]


def recv_exact(sock: socket.socket, count: int) -> bytes:
    """Read exactly ``count`` bytes or raise ProtocolError if the peer closes."""
    parts = []
    remaining = count
    while remaining > 0:
        chunk = sock.recv(min(BUFSIZE, remaining))
        if not chunk:
            raise ProtocolError("connection closed before all data arrived")
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def send_size(sock: socket.socket, size: int) -> None:
    """Send a size header."""
    sock.sendall(encode_size(size))


def recv_size(sock: socket.socket) -> int:
    """Receive a size header."""
    return decode_size(recv_exact(sock, _SIZE.size))


def send_file_data(sock: socket.socket, path: str | os.PathLike) -> int:
    """Send the size of the file at ``path`` followed by its contents."""
    with open(path, "rb") as handle:
        size = os.fstat(handle.fileno()).st_size
        send_size(sock, size)
        while chunk := handle.read(BUFSIZE):
            sock.sendall(chunk)
    return size


def receive_to_file(sock: socket.socket, path: str | os.PathLike, size: int) -> int:
    """Write ``size`` incoming bytes to ``path``; a partial file is removed."""
    remaining = size
    with open(path, "wb") as handle:
        while remaining > 0:
            chunk = sock.recv(min(BUFSIZE, remaining))
            if not chunk:
                break
            handle.write(chunk)
            remaining -= len(chunk)
    if remaining > 0:
        os.remove(path)
        raise ProtocolError(f"received {size - remaining} of {size} bytes")
    return size
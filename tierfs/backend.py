"""Backend storage server that keeps the files of a single extension."""

from __future__ import annotations

import argparse
import logging
import os
import socket
from collections.abc import Iterator

from .protocol import (
    BACKENDS,
    BUFSIZE,
    BackendInfo,
    ProtocolError,
    home_dir,
    parse_command,
    recv_size,
    send_file_data,
    send_size,
)
from .storage import FileStore

log = logging.getLogger(__name__)

_BACKLOG = 10


def _incoming(conn: socket.socket, size: int) -> Iterator[bytes]:
    """Yield data from ``conn`` until ``size`` bytes arrived or the peer closes."""
    received = 0
    while received < size:
        chunk = conn.recv(BUFSIZE)
        if not chunk:
            return
        received += len(chunk)
        yield chunk


class BackendServer:
    """Serves one request per connection for the files of ``info.extension``."""

    def __init__(self, info: BackendInfo, home: str | os.PathLike | None = None, host: str = ""):
        self.info = info
        self.home = home if home is not None else home_dir()
        self.host = host
        self.store = FileStore(self.home, info.name, info.extension)
        self._handlers = {
            "uploadf": self._save,
            "downlf": self._send,
            "removef": self._delete,
            "dispfnames": self._list,
        }

    def handle(self, conn: socket.socket) -> None:
        """Read one command from ``conn`` and carry it out."""
        data = conn.recv(BUFSIZE).split(b"\0", 1)[0]
        text = data.decode("utf-8", errors="replace")
        if text.startswith("downltar "):
            self._tar(conn)
            return
        try:
            command = parse_command(text)
        except ProtocolError:
            return
        handler = self._handlers.get(command.name)
        if handler is not None:
            handler(conn, command.args[0])

    def _save(self, conn: socket.socket, virtual_path: str) -> None:
        try:
            size = recv_size(conn)
        except ProtocolError:
            log.error("failed to receive file size")
            return
        try:
            path = self.store.save(virtual_path, _incoming(conn, size))
        except OSError as exc:
            log.error("cannot store %s: %s", virtual_path, exc)
            return
        log.info("Stored %s: %s", self.info.extension, path)

    def _send(self, conn: socket.socket, virtual_path: str) -> None:
        path = self.store.path_for(virtual_path)
        try:
            send_file_data(conn, path)
        except (FileNotFoundError, IsADirectoryError, PermissionError):
            send_size(conn, 0)
            return
        log.info("Sent file: %s", path)

    def _delete(self, conn: socket.socket, virtual_path: str) -> None:
        try:
            self.store.delete(virtual_path)
        except OSError:
            conn.sendall(b"File not found.\n")
        else:
            conn.sendall(b"File removed.\n")

    def _tar(self, conn: socket.socket) -> None:
        data = self.store.build_tar()
        send_size(conn, len(data))
        conn.sendall(data)
        log.info("Sent tar: %s (%d bytes)", self.info.tar_name, len(data))

    def _list(self, conn: socket.socket, virtual_path: str) -> None:
        if not self.store.path_for(virtual_path).is_dir():
            return
        names = self.store.list_names(virtual_path)
        conn.sendall("".join(f"{name}\n" for name in names).encode())

    def serve_forever(self, listener: socket.socket) -> None:
        """Accept connections one at a time and handle each."""
        while True:
            conn, _ = listener.accept()
            with conn:
                try:
                    self.handle(conn)
                except OSError as exc:
                    log.error("connection failed: %s", exc)

    def listen(self) -> socket.socket:
        """Return a socket bound to this backend's port and listening."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.info.port))
            sock.listen(_BACKLOG)
        except OSError:
            sock.close()
            raise
        return sock


def _backend_named(value: str) -> BackendInfo:
    for info in BACKENDS:
        if value in (info.name, info.extension):
            return info
    raise argparse.ArgumentTypeError(f"unknown backend: {value}")


def main(argv: list[str] | None = None) -> int:
    """Run a backend storage server."""
    parser = argparse.ArgumentParser(prog="tierfs-backend", description=__doc__)
    parser.add_argument(
        "backend",
        type=_backend_named,
        help="server name (S2, S3, S4) or extension (.pdf, .txt, .zip)",
    )
    parser.add_argument("--home", default=None, help="directory holding the storage root")
    parser.add_argument("--host", default="", help="address to bind")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    server = BackendServer(args.backend, args.home, args.host)
    listener = server.listen()
    print(f"{args.backend.name} Server ({args.backend.extension}) listening on port {args.backend.port}...")
    try:
        server.serve_forever(listener)
    except KeyboardInterrupt:
        return 0
    finally:
        listener.close()
    return 0
"""Front server: keeps C sources itself and routes every other file type to a backend."""

from __future__ import annotations

import argparse
import contextlib
import logging
import os
import socket
import tempfile
import threading
import time
from pathlib import Path

from .protocol import (
    BACKEND_HOST,
    BACKENDS,
    BUFSIZE,
    LOCAL_EXTENSION,
    MAIN_PORT,
    Command,
    ProtocolError,
    backend_for,
    backend_path,
    extension_of,
    home_dir,
    parse_command,
    receive_to_file,
    recv_size,
    resolve,
    send_file_data,
    send_size,
)
from .storage import FileStore

log = logging.getLogger(__name__)

_BACKLOG = 10
_LOCAL_SERVER = "S1"
_LOCAL_PREFIX = "~S1"
_ERROR_SIZE = -1
_FORWARD_PAUSE = 0.1
_TAR_TIMEOUT = 10.0
_LIST_TIMEOUT = 2.0
_REPLY_SIZE = 256
_MAX_NAMES = 1024
_TAR_TYPES = (".pdf", ".txt")


def _listing(names: list[str]) -> bytes:
    """Newline-terminated names, capped like one fixed-size reply buffer."""
    return "".join(f"{name}\n" for name in names).encode()[: BUFSIZE - 1]


def _relay(source: socket.socket, dest: socket.socket, size: int) -> int:
    """Copy up to ``size`` bytes from ``source`` to ``dest``; return the count."""
    received = 0
    while received < size:
        try:
            chunk = source.recv(BUFSIZE)
        except OSError:
            break
        if not chunk:
            break
        dest.sendall(chunk)
        received += len(chunk)
    return received


class MainServer:
    """Accepts client sessions and carries out their file commands."""

    def __init__(
        self,
        home: str | os.PathLike | None = None,
        port: int = MAIN_PORT,
        backend_host: str = BACKEND_HOST,
    ):
        self.home = Path(home if home is not None else home_dir())
        self.port = port
        self.backend_host = backend_host
        self.backend_ports = {info.extension: info.port for info in BACKENDS}
        self._handlers = {
            "uploadf": self.handle_upload,
            "downlf": self.handle_download,
            "removef": self.handle_remove,
            "downltar": self.handle_downltar,
            "dispfnames": self.handle_dispfnames,
        }

    def _local_store(self) -> FileStore:
        return FileStore(self.home, _LOCAL_SERVER, LOCAL_EXTENSION)

    def _connect(self, port: int, timeout: float | None = None) -> socket.socket:
        sock = socket.create_connection((self.backend_host, port))
        sock.settimeout(timeout)
        return sock

    def handle_client(self, conn: socket.socket) -> None:
        """Serve commands from one client until it disconnects."""
        while True:
            data = conn.recv(BUFSIZE - 1)
            if not data:
                log.info("Client disconnected.")
                break
            text = data.split(b"\0", 1)[0].decode("utf-8", errors="replace")
            log.info("Command received: %s", text)
            try:
                command = parse_command(text)
            except ProtocolError:
                conn.sendall(b"Invalid command.\n")
                continue
            self._handlers[command.name](conn, command)

    def handle_upload(self, conn: socket.socket, command: Command) -> None:
        """Receive a file; keep C sources, forward the rest to their backend."""
        filename, dest = command.args
        if not dest.startswith(_LOCAL_PREFIX):
            conn.sendall(b"Destination must start with ~S1.\n")
            return
        try:
            size = recv_size(conn)
        except ProtocolError as exc:
            log.error("failed to receive file size: %s", exc)
            return

        ext = extension_of(filename)
        if ext == LOCAL_EXTENSION:
            path = resolve(self.home, dest) / filename
            log.info("Trying to save (S1): %s", path)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                receive_to_file(conn, path, size)
            except ProtocolError as exc:
                log.error("upload of %s broken off: %s", path, exc)
                return
            except OSError as exc:
                log.error("cannot save %s: %s", path, exc)
                conn.sendall(b"Failed to save file.\n")
                return
            conn.sendall(b"File stored successfully.\n")
            return

        temp_path: str | None = None
        try:
            try:
                fd, temp_path = tempfile.mkstemp(
                    prefix=f"forwarded_{os.getpid()}_",
                    suffix=f"_{os.path.basename(filename)}",
                )
                os.close(fd)
                receive_to_file(conn, temp_path, size)
            except ProtocolError as exc:
                log.error("upload of %s broken off: %s", filename, exc)
                return
            except OSError as exc:
                log.error("cannot write temporary file: %s", exc)
                conn.sendall(b"Failed to save file to temporary location.\n")
                return

            try:
                info = backend_for(ext)
            except ProtocolError:
                conn.sendall(b"Unsupported file type.\n")
                return

            target = f"{backend_path(dest, info)}/{filename}"
            port = self.backend_ports[info.extension]
            log.info("Forwarding %s to backend (target: %s, port: %d)", temp_path, target, port)
            try:
                self.forward_file(temp_path, target, port)
            except OSError as exc:
                log.error("forwarding to port %d failed: %s", port, exc)
            conn.sendall(b"File stored successfully.\n")
        finally:
            if temp_path is not None:
                with contextlib.suppress(FileNotFoundError):
                    os.remove(temp_path)

    def forward_file(self, path: str | os.PathLike, dest_path: str, port: int) -> None:
        """Upload the file at ``path`` to the backend on ``port`` as ``dest_path``."""
        with self._connect(port) as sock:
            sock.sendall(f"uploadf {dest_path}".encode())
            time.sleep(_FORWARD_PAUSE)
            send_file_data(sock, path)

    def handle_download(self, conn: socket.socket, command: Command) -> None:
        """Send a file to the client, preceded by its size; -1 signals failure."""
        filepath = command.args[0]
        ext = extension_of(filepath)
        if ext is None:
            send_size(conn, _ERROR_SIZE)
            return

        if ext == LOCAL_EXTENSION:
            try:
                send_file_data(conn, resolve(self.home, filepath))
            except (FileNotFoundError, IsADirectoryError, PermissionError):
                send_size(conn, _ERROR_SIZE)
            return

        try:
            info = backend_for(ext)
        except ProtocolError:
            send_size(conn, _ERROR_SIZE)
            return
        try:
            backend = self._connect(self.backend_ports[info.extension])
        except OSError:
            send_size(conn, _ERROR_SIZE)
            return
        with backend:
            try:
                backend.sendall(f"downlf {backend_path(filepath, info)}".encode())
                size = recv_size(backend)
            except (OSError, ProtocolError):
                send_size(conn, _ERROR_SIZE)
                return
            if size <= 0:
                send_size(conn, _ERROR_SIZE)
                return
            send_size(conn, size)
            _relay(backend, conn, size)

    def handle_remove(self, conn: socket.socket, command: Command) -> None:
        """Delete a file locally or on its backend and report the outcome."""
        filepath = command.args[0]
        ext = extension_of(filepath)
        if ext is None:
            conn.sendall(b"Invalid file extension.\n")
            return

        if ext == LOCAL_EXTENSION:
            try:
                os.remove(resolve(self.home, filepath))
            except OSError:
                conn.sendall(b"File not found or cannot delete.\n")
            else:
                conn.sendall(b"File deleted.\n")
            return

        try:
            info = backend_for(ext)
        except ProtocolError:
            conn.sendall(b"Unsupported file type.\n")
            return
        try:
            backend = self._connect(self.backend_ports[info.extension])
        except OSError:
            conn.sendall(b"Cannot connect.\n")
            return
        with backend:
            try:
                backend.sendall(f"removef {backend_path(filepath, info)}".encode())
                reply = backend.recv(_REPLY_SIZE)
            except OSError:
                reply = b""
        conn.sendall(reply.split(b"\0", 1)[0])

    def handle_downltar(self, conn: socket.socket, command: Command) -> None:
        """Send a tar archive of every stored file of one type."""
        filetype = command.args[0]

        if filetype == LOCAL_EXTENSION:
            store = self._local_store()
            if not store.root.is_dir():
                conn.sendall(b"Could not create cfiles.tar.\n")
                return
            data = store.build_tar()
            if not data:
                conn.sendall(b"No .c files found to create tar archive.\n")
                return
            send_size(conn, len(data))
            conn.sendall(data)
            log.info("Sent cfiles.tar to client (%d bytes)", len(data))
            return

        if filetype not in _TAR_TYPES:
            conn.sendall(b"Only .c, .pdf, and .txt file types are supported for tar.\n")
            return

        info = backend_for(filetype)
        try:
            backend = self._connect(self.backend_ports[info.extension], _TAR_TIMEOUT)
        except OSError:
            conn.sendall(b"Cannot connect to backend server.\n")
            return
        with backend:
            try:
                backend.sendall(f"downltar {filetype}".encode())
                size = recv_size(backend)
            except (OSError, ProtocolError):
                conn.sendall(b"Failed to receive file size from backend server.\n")
                return
            if size == 0:
                conn.sendall(b"No files found to create tar archive.\n")
                return
            send_size(conn, size)
            received = _relay(backend, conn, size)
        log.info("Forwarded %s to client (%d/%d bytes)", info.tar_name, received, size)

    def collect_files(self, path: str, port: int) -> str | None:
        """Ask the backend on ``port`` for its file list; None if it is unreachable."""
        try:
            sock = self._connect(port, _LIST_TIMEOUT)
        except OSError:
            return None
        with sock:
            try:
                sock.sendall(f"dispfnames {path}".encode())
                data = sock.recv(BUFSIZE)
            except OSError:
                data = b""
        return data.split(b"\0", 1)[0].decode("utf-8", errors="replace")

    def handle_dispfnames(self, conn: socket.socket, command: Command) -> None:
        """Send the sorted names of all files in a directory, grouped by type."""
        dirpath = command.args[0]
        local = self._local_store().list_names(dirpath)[:_MAX_NAMES]
        sections = [_listing(sorted(local))]
        for info in BACKENDS:
            text = self.collect_files(backend_path(dirpath, info), self.backend_ports[info.extension])
            names = [name for name in (text or "").split("\n") if name][:_MAX_NAMES]
            sections.append(_listing(sorted(names)))
        result = b"".join(sections)
        if not result:
            conn.sendall(b"No files found in the specified path.\n")
        else:
            conn.sendall(result)

    def _serve_client(self, conn: socket.socket) -> None:
        with conn:
            try:
                self.handle_client(conn)
            except OSError as exc:
                log.error("client connection failed: %s", exc)

    def serve_forever(self, listener: socket.socket) -> None:
        """Accept clients and serve each in its own thread until the listener closes."""
        while True:
            try:
                conn, _ = listener.accept()
            except OSError as exc:
                if listener.fileno() < 0:
                    return
                if not isinstance(exc, socket.timeout):
                    log.error("accept failed: %s", exc)
                continue
            log.info("New client connected.")
            threading.Thread(target=self._serve_client, args=(conn,), daemon=True).start()

    def listen(self) -> socket.socket:
        """Return a socket bound to the server's port and listening."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("", self.port))
            sock.listen(_BACKLOG)
        except OSError:
            sock.close()
            raise
        return sock


def main(argv: list[str] | None = None) -> int:
    """Run the main server."""
    parser = argparse.ArgumentParser(prog="tierfs-server", description=__doc__)
    parser.add_argument("--home", default=None, help="directory holding the storage root")
    parser.add_argument("--port", type=int, default=MAIN_PORT, help="port to listen on")
    parser.add_argument("--backend-host", default=BACKEND_HOST, help="address of the backends")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    server = MainServer(args.home, args.port, args.backend_host)
    listener = server.listen()
    print(f"S1 Main Server started. Listening on port {server.port}...")
    try:
        server.serve_forever(listener)
    except KeyboardInterrupt:
        return 0
    finally:
        listener.close()
    return 0
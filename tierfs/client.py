"""Interactive client that talks to the main tierfs server."""

from __future__ import annotations

import argparse
import os
import socket
import sys
from pathlib import Path, PurePosixPath
from typing import TextIO

from .protocol import (
    BACKEND_HOST,
    BUFSIZE,
    MAIN_PORT,
    ProtocolError,
    receive_to_file,
    recv_size,
    send_file_data,
)

PROMPT = "\nw25clients$ "

_TAR_NAMES = {
    ".c": "cfiles.tar",
    ".pdf": "pdf.tar",
    ".txt": "text.tar",
}


class Client:
    """Runs user commands over one connection to the main server."""

    def __init__(
        self,
        sock: socket.socket,
        out: TextIO | None = None,
        workdir: str | os.PathLike | None = None,
    ):
        self.sock = sock
        self.out = out if out is not None else sys.stdout
        self.workdir = Path(workdir) if workdir is not None else Path.cwd()

    def _say(self, text: str) -> None:
        self.out.write(text)

    def run_command(self, line: str) -> bool:
        """Carry out one command line; return False when the user asked to exit."""
        line = line.split("\n", 1)[0]
        if line == "exit":
            return False

        if line.startswith("uploadf "):
            args = line[len("uploadf "):].split()
            if len(args) < 2:
                self._say("Invalid syntax. Use: uploadf <filename> <~S1/path>\n")
            else:
                self.upload(line, args[0])
        elif line.startswith("downlf "):
            args = line[len("downlf "):].split()
            if not args:
                self._say("Invalid syntax. Use: downlf <~S1/path/file.ext>\n")
            else:
                self.download(line, args[0])
        elif line.startswith("downltar "):
            args = line[len("downltar "):].split()
            if not args:
                self._say("Invalid syntax. Use: downltar <.c|.pdf|.txt>\n")
            else:
                self.download_tar(line, args[0])
        elif line.startswith("removef ") or line.startswith("dispfnames "):
            self.relay(line)
        else:
            self._say("Unknown command.\n")
        return True

    def upload(self, line: str, filename: str) -> None:
        """Send the upload command, then the file, then show the server's reply."""
        try:
            with open(self.workdir / filename, "rb"):
                pass
        except OSError:
            self._say("File not found locally.\n")
            return
        self.sock.sendall(line.encode())
        self.send_file(filename)
        reply = self.sock.recv(BUFSIZE)
        if reply:
            self._say(reply.decode("utf-8", errors="replace"))

    def download(self, line: str, filepath: str) -> Path | None:
        """Request a single file and store it under its base name."""
        self.sock.sendall(line.encode())
        local_name = PurePosixPath(filepath).name or filepath
        return self.receive_file(local_name)

    def download_tar(self, line: str, filetype: str) -> Path | None:
        """Request an archive of all stored files of one type."""
        self.sock.sendall(line.encode())
        tar_name = _TAR_NAMES.get(filetype)
        if tar_name is None:
            self._say("Unsupported file type for tar download.\n")
            return None
        return self.receive_file(tar_name)

    def relay(self, line: str) -> None:
        """Send a command and show the text the server answers with."""
        self.sock.sendall(line.encode())
        reply = self.sock.recv(BUFSIZE)
        if reply:
            self._say(reply.decode("utf-8", errors="replace"))

    def send_file(self, filename: str) -> None:
        """Send the size of a local file followed by its contents."""
        try:
            send_file_data(self.sock, self.workdir / filename)
        except OSError as exc:
            self._say(f"fopen error: {exc}\n")

    def receive_file(self, filename: str) -> Path | None:
        """Receive a size header and file data into ``filename``; return its path."""
        path = self.workdir / filename
        try:
            size = recv_size(self.sock)
        except ProtocolError:
            self._say("Error receiving file size from server.\n")
            return None
        if size <= 0:
            self._say("Error: File not found on server.\n")
            return None
        try:
            receive_to_file(self.sock, path, size)
        except ProtocolError:
            self._say("Error receiving file data from server.\n")
            self._say("File download incomplete. Removing incomplete file.\n")
            return None
        except OSError as exc:
            self._say(f"Error opening file for writing: {exc}\n")
            return None
        self._say(f"File downloaded '{filename}'\n")
        return path


def main(argv: list[str] | None = None) -> int:
    """Connect to the main server and run commands read from standard input."""
    parser = argparse.ArgumentParser(prog="tierfs-client", description=__doc__)
    parser.add_argument("--host", default=BACKEND_HOST, help="address of the main server")
    parser.add_argument("--port", type=int, default=MAIN_PORT, help="port of the main server")
    args = parser.parse_args(argv)

    try:
        sock = socket.create_connection((args.host, args.port))
    except OSError as exc:
        print(f"Client: connect: {exc}", file=sys.stderr)
        return 1

    with sock:
        print("\n Connected to S1 Server (Distributed File System)")
        print(" Welcome to COMP-8567 DFS Client Interface")
        client = Client(sock)
        while True:
            sys.stdout.write(PROMPT)
            sys.stdout.flush()
            line = sys.stdin.readline()
            if not line:
                break
            try:
                if not client.run_command(line):
                    break
            except OSError as exc:
                print(f"Connection error: {exc}")
                break
            sys.stdout.flush()
    print("Client disconnected from S1. Goodbye!")
    return 0
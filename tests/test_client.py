import io
import socket
import threading

import pytest

from tierfs.client import Client, main
from tierfs.protocol import encode_size


@pytest.fixture
def pair():
    client_sock, peer = socket.socketpair()
    client_sock.settimeout(5)
    peer.settimeout(5)
    yield client_sock, peer
    client_sock.close()
    peer.close()


def _make(client_sock, tmp_path):
    out = io.StringIO()
    return Client(client_sock, out, tmp_path), out


def _drain(peer, count):
    data = b""
    while len(data) < count:
        chunk = peer.recv(count - len(data))
        if not chunk:
            break
        data += chunk
    return data


def test_exit_stops_loop(pair, tmp_path):
    client_sock, peer = pair
    client, out = _make(client_sock, tmp_path)
    assert client.run_command("exit\n") is False
    assert out.getvalue() == ""


def test_unknown_command(pair, tmp_path):
    client, out = _make(pair[0], tmp_path)
    assert client.run_command("list everything") is True
    assert out.getvalue() == "Unknown command.\n"


def test_upload_missing_destination_is_invalid(pair, tmp_path):
    client, out = _make(pair[0], tmp_path)
    client.run_command("uploadf a.c")
    assert out.getvalue() == "Invalid syntax. Use: uploadf <filename> <~S1/path>\n"


def test_upload_missing_local_file(pair, tmp_path):
    client, out = _make(pair[0], tmp_path)
    client.run_command("uploadf nothere.c ~S1/dir")
    assert out.getvalue() == "File not found locally.\n"


def test_upload_sends_command_size_and_data(pair, tmp_path):
    client_sock, peer = pair
    (tmp_path / "a.c").write_bytes(b"hello")
    peer.sendall(b"File stored successfully.\n")
    client, out = _make(client_sock, tmp_path)
    line = "uploadf a.c ~S1/dir"
    client.run_command(line)
    expected = line.encode() + encode_size(5) + b"hello"
    assert _drain(peer, len(expected)) == expected
    assert out.getvalue() == "File stored successfully.\n"


def test_download_writes_basename(pair, tmp_path):
    client_sock, peer = pair
    peer.sendall(encode_size(3) + b"abc")
    client, out = _make(client_sock, tmp_path)
    line = "downlf ~S1/dir/x.c"
    client.run_command(line)
    assert (tmp_path / "x.c").read_bytes() == b"abc"
    assert out.getvalue() == "File downloaded 'x.c'\n"
    assert _drain(peer, len(line)) == line.encode()


def test_download_error_size(pair, tmp_path):
    client_sock, peer = pair
    peer.sendall(encode_size(-1))
    client, out = _make(client_sock, tmp_path)
    assert client.download("downlf ~S1/x.c", "~S1/x.c") is None
    assert out.getvalue() == "Error: File not found on server.\n"
    assert not (tmp_path / "x.c").exists()


def test_incomplete_download_is_removed(pair, tmp_path):
    client_sock, peer = pair
    peer.sendall(encode_size(10) + b"abc")
    peer.shutdown(socket.SHUT_WR)
    client, out = _make(client_sock, tmp_path)
    assert client.receive_file("part.txt") is None
    assert not (tmp_path / "part.txt").exists()
    assert "File download incomplete. Removing incomplete file.\n" in out.getvalue()


def test_missing_size_header(pair, tmp_path):
    client_sock, peer = pair
    peer.shutdown(socket.SHUT_WR)
    client, out = _make(client_sock, tmp_path)
    assert client.receive_file("a.c") is None
    assert out.getvalue() == "Error receiving file size from server.\n"


@pytest.mark.parametrize(
    "filetype, tar_name",
    [(".c", "cfiles.tar"), (".pdf", "pdf.tar"), (".txt", "text.tar")],
)
def test_download_tar_names(pair, tmp_path, filetype, tar_name):
    client_sock, peer = pair
    peer.sendall(encode_size(4) + b"tarx")
    client, out = _make(client_sock, tmp_path)
    path = client.download_tar(f"downltar {filetype}", filetype)
    assert path == tmp_path / tar_name
    assert path.read_bytes() == b"tarx"


def test_download_tar_unsupported_still_sends(pair, tmp_path):
    client_sock, peer = pair
    client, out = _make(client_sock, tmp_path)
    line = "downltar .zip"
    client.run_command(line)
    assert out.getvalue() == "Unsupported file type for tar download.\n"
    assert _drain(peer, len(line)) == line.encode()


def test_relay_shows_reply(pair, tmp_path):
    client_sock, peer = pair
    peer.sendall(b"File deleted.\n")
    client, out = _make(client_sock, tmp_path)
    client.run_command("removef ~S1/a.c")
    assert out.getvalue() == "File deleted.\n"
    assert _drain(peer, len("removef ~S1/a.c")) == b"removef ~S1/a.c"


def test_send_file_round_trip(pair, tmp_path):
    client_sock, peer = pair
    (tmp_path / "data.txt").write_bytes(b"payload")
    client, _ = _make(client_sock, tmp_path)
    client.send_file("data.txt")
    assert _drain(peer, 8 + 7) == encode_size(7) + b"payload"


def test_main_runs_commands(monkeypatch, capsys):
    listener = socket.socket()
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    port = listener.getsockname()[1]
    received = []

    def serve():
        conn, _ = listener.accept()
        with conn:
            received.append(conn.recv(1024))
            conn.sendall(b"No files found in the specified path.\n")
            while conn.recv(1024):
                pass

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    monkeypatch.setattr("sys.stdin", io.StringIO("dispfnames ~S1\nexit\n"))
    try:
        result = main(["--host", "127.0.0.1", "--port", str(port)])
    finally:
        thread.join(5)
        listener.close()
    output = capsys.readouterr().out
    assert result == 0
    assert received == [b"dispfnames ~S1"]
    assert "No files found in the specified path.\n" in output
    assert output.endswith("Client disconnected from S1. Goodbye!\n")


def test_main_connect_failure():
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    assert main(["--host", "127.0.0.1", "--port", str(port)]) == 1
# tierfs

tierfs is a small distributed file system. It has one main server, three
backend storage servers and an interactive client.

A client talks only to the main server. The main server routes each file by
its extension. It keeps `.c` files itself and passes `.pdf`, `.txt` and
`.zip` files on to their backends. The client sees every file under one
virtual tree rooted at `~S1`.

| Server      | Port | Stores | Directory  |
|-------------|------|--------|------------|
| main (S1)   | 7010 | `.c`   | `$HOME/S1` |
| backend S2  | 7100 | `.pdf` | `$HOME/S2` |
| backend S3  | 7200 | `.txt` | `$HOME/S3` |
| backend S4  | 7300 | `.zip` | `$HOME/S4` |

The backend paths mirror the virtual ones. For example, `~S1/docs/report.pdf`
is stored by the PDF backend as `$HOME/S2/docs/report.pdf`. If `HOME` is not
set, the account's home directory from the password database is used.

## Installation

```
pip install .
```

Installing the package gives you three commands: `tierfs-backend`,
`tierfs-server` and `tierfs-client`. The package uses only the Python
standard library.

## Running

Start one backend for each file type. You can name a backend by its server
name or by its extension:

```
tierfs-backend S2          # or: tierfs-backend .pdf
tierfs-backend S3          # or: tierfs-backend .txt
tierfs-backend S4          # or: tierfs-backend .zip
```

Options: `--home DIR` sets the directory that holds the storage root (the
default is the home directory). `--host ADDR` sets the address to bind (the
default is all interfaces). A backend serves one request per connection and
handles connections one at a time.

Start the main server:

```
tierfs-server [--home DIR] [--port 7010] [--backend-host 127.0.0.1]
```

The main server serves each client connection in its own thread. It keeps
reading commands until the client disconnects.

Connect with the client:

```
tierfs-client [--host 127.0.0.1] [--port 7010]
```

The client reads commands at a `w25clients$` prompt. It stops on `exit` or at
end of input.

## Client commands

```
uploadf <filename> <~S1/path>      upload a local file into a virtual directory
downlf <~S1/path/file.ext>         download a file into the current directory
removef <~S1/path/file.ext>        delete a stored file
downltar <.c|.pdf|.txt>            download a tar archive of every file of that type
dispfnames <~S1/path>              list the files stored in a virtual directory
exit                               leave the client
```

How the commands behave:

- **Uploads.** The destination must start with `~S1`. Only `.c`, `.pdf`,
  `.txt` and `.zip` files are accepted. A file of any other type is still
  sent in full, then rejected with `Unsupported file type.`
- **Downloads.** `downlf` saves the file under its base name in the current
  directory. If a download is cut short, the partial file is removed.
- **Archives.** `downltar` saves the archive as `cfiles.tar`, `pdf.tar` or
  `text.tar`. The main server does not offer archives of `.zip` files, but a
  ZIP backend answers a `downltar` request sent to it directly. Members of an
  archive are named relative to the storage root, for example `./docs/a.c`.
- **Listings.** `dispfnames` lists `.c` files first, then `.pdf`, `.txt` and
  `.zip` files. Each group is sorted by name. A backend that cannot be reached
  is skipped.

## Library use

These parts can be used on their own:

- `tierfs.protocol` parses commands (`parse_command`), maps paths (`resolve`,
  `backend_for`, `backend_path`) and frames transfers (`send_file_data`,
  `recv_size`, `receive_to_file`). Errors are raised as `ProtocolError`.
- `tierfs.storage.FileStore` stores, reads, deletes, lists and tars the files
  of one extension under `<home>/<server>`.
- `tierfs.backend.BackendServer`, `tierfs.mainserver.MainServer` and
  `tierfs.client.Client` are the servers and the client used by the commands.

## Wire format

Commands are sent as plain text, such as `downlf ~S1/docs/a.c`. A file is sent
as its size, then its raw bytes. The size is an 8-byte little-endian signed
integer. A size of zero or less means the file is missing or the request
failed. The main server uses `-1` for this; backends use `0`.

## Limitations

- There is no authentication and no encryption. Any peer that can reach a
  port can read, write and delete stored files.
- The main server reaches every backend at a single address. By default that
  address is `127.0.0.1`.
- Upload replies are not checked end to end. If a forwarded upload cannot
  reach its backend, the error is logged, but the client is still told
  `File stored successfully.`
- Each group in a `dispfnames` reply is cut off at 1023 bytes. A backend's
  list is read from a single 1024-byte reply.

## Tests

```
pip install ".[test]"
pytest
```
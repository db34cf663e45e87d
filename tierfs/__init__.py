"""A small distributed file system: a main server, per-type backend storage servers and a client."""

__version__ = "0.1.0"
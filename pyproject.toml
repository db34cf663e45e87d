[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tierfs"
version = "0.1.0"
description = "A small distributed file system: a main server that routes files by type to backend storage servers, and an interactive client."
requires-python = ">=3.10"
dependencies = []
keywords = ["distributed file system", "file server", "tcp", "storage", "tar"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tierfs-server = "tierfs.mainserver:main"
tierfs-backend = "tierfs.backend:main"
tierfs-client = "tierfs.client:main"

[tool.hatch.build.targets.wheel]
packages = ["tierfs"]

[tool.pytest.ini_options]
addopts = "-ra"

"""URL-to-filesystem path mapping and file saving."""

import logging
import os
import re
from typing import NamedTuple, Protocol
from urllib.parse import unquote

from .errors import PersistenceFailure
from .url_resolver import remove_port

logger = logging.getLogger(__name__)

_PROTOCOL_REGEX = re.compile(r"^.+?://")

DEFAULT_FILENAME = "index"

_DOT_SEGMENTS = (".", "..")


class UrlParts(NamedTuple):
    directory_path: str
    filename: str


class FileSystem(Protocol):
    def ensure_directory(self, path: str) -> None:
        ...

    def file_exists(self, path: str) -> bool:
        ...

    def write_bytes(self, path: str, data: bytes) -> None:
        ...


class LocalFileSystem:
    """File system capability backed by the local disk."""

    def ensure_directory(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def write_bytes(self, path: str, data: bytes) -> None:
        with open(path, "wb") as f:
            f.write(data)


def storage_url(url: str) -> str:
    """Key used for the on-disk location: percent-decoded, without port."""
    return unquote(remove_port(url))


def split_url(url: str) -> UrlParts:
    """Split a URL into the directory path and filename it is stored under.

    Examples:
        "https://example.com/a/b/logo.png" -> ("example.com/a/b", "logo.png")
        "https://example.com/a/"           -> ("example.com/a", "index")
        "https://example.com"              -> ("", "example.com")
        "https://example.com/../x.txt"     -> ("example.com", "x.txt")

    '.' and '..' segments are dropped, so the path never leaves the host
    directory.
    """
    without_protocol = _PROTOCOL_REGEX.sub("", url, count=1)
    parts = without_protocol.split("/")
    filename = parts[-1]
    if filename in _DOT_SEGMENTS:
        filename = ""
    directories = [part for part in parts[:-1] if part and part not in _DOT_SEGMENTS]
    return UrlParts("/".join(directories), filename or DEFAULT_FILENAME)


def file_full_path(base_output_dir: str, url: str) -> str:
    directory_path, filename = split_url(url)
    return os.path.join(base_output_dir, directory_path, filename)


def is_within(root: str, path: str) -> bool:
    """True if ``path`` resolves (symlinks included) to a location under ``root``."""
    real_root = os.path.realpath(root)
    return os.path.commonpath([real_root, os.path.realpath(path)]) == real_root


def persist(
    base_output_dir: str,
    url: str,
    body: bytes | str | None,
    overwrite: bool,
    fs: FileSystem | None = None,
) -> bool:
    """Store a response body at the path derived from ``url``.

    Directories are created as needed. An existing file is left untouched
    unless ``overwrite`` is set. A None body writes nothing, while an empty
    body produces a zero-length file. A path that would resolve outside
    ``base_output_dir`` is logged and skipped, as is a file that would have
    to replace a directory (or the reverse).

    Args:
        base_output_dir: Root of the archive tree.
        url: Storage URL (see storage_url).
        body: Payload to write; str is encoded as UTF-8.
        overwrite: Replace files that already exist.
        fs: File system capability (defaults to the local disk).

    Returns:
        True if the file was written.

    Raises:
        PersistenceFailure: If a directory or the file cannot be written.
    """
    fs = fs or LocalFileSystem()
    directory_path, filename = split_url(url)
    directory = os.path.join(base_output_dir, directory_path)
    file_path = os.path.join(directory, filename)

    if not is_within(base_output_dir, file_path):
        logger.warning(f"  [ESCAPE] {file_path} is outside {base_output_dir}, not saving {url}")
        return False

    try:
        fs.ensure_directory(directory)
    except (FileExistsError, NotADirectoryError) as e:
        logger.warning(f"  [COLLISION] A file already occupies part of {directory}, not saving {url}: {e}")
        return False
    except OSError as e:
        logger.error(f"  [ERROR] Failed to create directories for {url}: {e}")
        raise PersistenceFailure(directory, str(e)) from e

    if not overwrite and fs.file_exists(file_path):
        logger.info(f"  [SKIP] Already exists: {file_path}")
        return False

    if body is None:
        logger.debug(f"  [SKIP] No body for {url}")
        return False

    payload = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    try:
        fs.write_bytes(file_path, payload)
    except IsADirectoryError as e:
        logger.warning(f"  [COLLISION] {file_path} is a directory, not saving {url}: {e}")
        return False
    except OSError as e:
        logger.error(f"  [ERROR] Failed to save {file_path}: {e}")
        raise PersistenceFailure(file_path, str(e)) from e

    logger.info(f"  [SAVED] {file_path} ({len(payload)} bytes)")
    return True

"""Service packaging: gzip tarball of a build context minus dev artifacts."""

import logging
import os
import tarfile
import tempfile
import time
from pathlib import Path

from mandala_cli.errors import PackagingError

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "mandala_agent_"
ARCHIVE_EXTENSION = ".tgz"

EXCLUDE_PATTERNS = [
    "node_modules",
    ".git",
    "dist",
    ".env",
    "*.tgz",
    "mandala_artifact_*",
    "cars_artifact_*",
    "mandala_agent_*",
]


def is_excluded(relative_path, patterns=EXCLUDE_PATTERNS):
    """Whether *relative_path* (POSIX, relative to the build context) is excluded.

    ``prefix*`` matches relative paths starting with ``prefix``; ``*suffix``
    matches file names ending with ``suffix`` at any depth; a literal pattern
    matches the path itself or anything below it.
    """
    relative_path = relative_path[2:] if relative_path.startswith("./") else relative_path
    for pattern in patterns:
        if pattern.startswith("*"):
            if relative_path.rsplit("/", 1)[-1].endswith(pattern[1:]):
                return True
        elif pattern.endswith("*"):
            if relative_path.startswith(pattern[:-1]):
                return True
        elif relative_path == pattern or relative_path.startswith(pattern + "/"):
            return True
    return False


def _iter_included(root: Path):
    """Yield (path, arcname) for every included file and directory, sorted."""
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        kept = []
        for d in sorted(dirnames):
            rel = f"{rel_dir}/{d}" if rel_dir else d
            if not is_excluded(rel):
                kept.append(d)
                yield Path(dirpath) / d, rel
        # Prune excluded directories from the walk
        dirnames[:] = kept

        for name in sorted(filenames):
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if not is_excluded(rel):
                yield Path(dirpath) / name, rel


def pack_build_context(build_context, service_name="agent", output_dir=None) -> Path:
    """Create a gzip tarball of *build_context*.

    Args:
        build_context: directory to package.
        service_name: used in the archive file name.
        output_dir: where to write the archive (default: a fresh temp dir).

    Returns:
        Path to the archive. The caller deletes it after upload.
    """
    root = Path(build_context)
    if not root.is_dir():
        raise PackagingError(f"Build context for '{service_name}' not found: {root}")

    out_dir = Path(output_dir) if output_dir else Path(tempfile.mkdtemp(prefix="mandala_pack_"))
    archive = out_dir / f"{ARCHIVE_PREFIX}{service_name}_{int(time.time() * 1000)}{ARCHIVE_EXTENSION}"

    count = 0
    try:
        with tarfile.open(archive, "w:gz") as tar:
            for path, arcname in _iter_included(root):
                if path.resolve() == archive.resolve():
                    continue
                tar.add(path, arcname=arcname, recursive=False)
                count += 1
    except OSError as e:
        archive.unlink(missing_ok=True)
        raise PackagingError(f"Failed to package '{service_name}' from {root}: {e}") from e

    logger.info(f"Packaged '{service_name}': {count} entries, {archive.stat().st_size} bytes")
    return archive


def remove_archive(archive):
    """Delete a local archive, and the temp dir pack_build_context made for it."""
    path = Path(archive)
    path.unlink(missing_ok=True)
    if path.parent.name.startswith("mandala_pack_"):
        try:
            path.parent.rmdir()
        except OSError:
            pass


def estimate_context_size(build_context) -> tuple[int, int]:
    """Return (file_count, total_bytes) that pack_build_context would include."""
    root = Path(build_context)
    files = 0
    total = 0
    for path, _ in _iter_included(root):
        if path.is_file():
            files += 1
            total += path.stat().st_size
    return files, total

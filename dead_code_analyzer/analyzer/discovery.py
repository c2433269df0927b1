"""Source file and package discovery."""
import re
from pathlib import Path
from typing import Dict, Iterable, List

from loguru import logger

from ..config import DEFAULT_EXCLUDED_DIRS
from .errors import PreconditionError

_PUBSPEC_NAME = re.compile(r"^name:\s*['\"]?([A-Za-z_][\w]*)['\"]?\s*$", re.MULTILINE)


def _require_directory(root: Path) -> Path:
    root = Path(root)
    if not root.exists():
        raise PreconditionError(f"Project directory does not exist: {root}")
    if not root.is_dir():
        raise PreconditionError(f"Project path is not a directory: {root}")
    return root.resolve()


def _is_excluded(path: Path, root: Path, excluded_dirs: Iterable[str]) -> bool:
    # Only segments below the root count, so a project that itself lives
    # under e.g. /home/me/build/ is still scanned.
    relative_parts = path.relative_to(root).parts[:-1]
    return any(part in excluded_dirs for part in relative_parts)


def discover_source_files(
    root: Path,
    extension: str = ".dart",
    excluded_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS,
) -> List[str]:
    """Enumerate source files under a root directory.

    Args:
        root: Project root directory
        extension: Source file extension (with leading dot)
        excluded_dirs: Directory names whose subtrees are skipped

    Returns:
        Sorted list of absolute file paths (sorted for deterministic partitioning)

    Raises:
        PreconditionError: If root is missing or not a directory
    """
    root = _require_directory(root)
    excluded = set(excluded_dirs)

    files = []
    for file_path in root.rglob(f"*{extension}"):
        if not file_path.is_file():
            continue
        if _is_excluded(file_path, root, excluded):
            continue
        files.append(str(file_path))

    files.sort()
    logger.debug(f"Discovered {len(files)} {extension} files under {root}")
    return files


def find_package_roots(root: Path, excluded_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS) -> Dict[str, str]:
    """Map every package directory (one holding a pubspec.yaml) to its package name.

    Args:
        root: Project root directory
        excluded_dirs: Directory names whose subtrees are skipped

    Returns:
        Dict of absolute package directory -> package name
    """
    root = _require_directory(root)
    excluded = set(excluded_dirs)

    packages: Dict[str, str] = {}
    for pubspec in sorted(root.rglob("pubspec.yaml")):
        if _is_excluded(pubspec, root, excluded):
            continue
        try:
            text = pubspec.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {pubspec}: {e}")
            continue
        match = _PUBSPEC_NAME.search(text)
        if match:
            packages[str(pubspec.parent)] = match.group(1)
    return packages

"""Configuration management for the Dart dead code analyzer.

Loads environment variables (optionally from a .env file) and exposes them
as typed properties. The orchestrator never reads the environment itself;
it receives an immutable AnalysisOptions snapshot built from this config.
"""
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

__version__ = "1.0.0"

DEFAULT_EXCLUDED_DIRS = (".dart_tool", "build", ".idea", ".vscode", "test", ".fvm", ".git")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class AnalysisOptions:
    """Immutable run options handed to the orchestrator and its workers."""
    max_workers: int = 1
    min_files_per_worker: int = 10
    sequential_threshold: int = 20
    use_processes: bool = True
    analyze_functions: bool = True
    follow_exports: bool = True
    source_extension: str = ".dart"
    excluded_dirs: Tuple[str, ...] = field(default=DEFAULT_EXCLUDED_DIRS)


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_file: Optional[Path] = None):
        """Initialize config by loading a .env file.

        Args:
            env_file: Explicit .env path (defaults to ./.env in the working directory)

        Raises:
            ValueError: If a numeric setting is malformed or not positive
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        self._validate()

    def _validate(self):
        """Fail fast on malformed numeric settings.

        Raises:
            ValueError: If any worker/threshold setting is not a positive integer
        """
        for name, value in (
            ("DCA_MAX_WORKERS", self.max_workers),
            ("DCA_MIN_FILES_PER_WORKER", self.min_files_per_worker),
            ("DCA_SEQUENTIAL_THRESHOLD", self.sequential_threshold),
        ):
            if value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value}")

    @staticmethod
    def _int_env(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{name} must be an integer, got {raw!r}") from None

    @staticmethod
    def _bool_env(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None:
            return default
        value = raw.strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        raise ValueError(f"{name} must be a boolean, got {raw!r}")

    @property
    def max_workers(self) -> int:
        """Upper bound on parallel workers (defaults to the CPU count)."""
        return self._int_env("DCA_MAX_WORKERS", os.cpu_count() or 1)

    @property
    def min_files_per_worker(self) -> int:
        return self._int_env("DCA_MIN_FILES_PER_WORKER", 10)

    @property
    def sequential_threshold(self) -> int:
        """Below this many files the run stays in the calling process."""
        return self._int_env("DCA_SEQUENTIAL_THRESHOLD", 20)

    @property
    def use_processes(self) -> bool:
        return self._bool_env("DCA_USE_PROCESSES", True)

    @property
    def follow_exports(self) -> bool:
        return self._bool_env("DCA_FOLLOW_EXPORTS", True)

    @property
    def source_extension(self) -> str:
        ext = os.getenv("DCA_SOURCE_EXTENSION", ".dart").strip()
        return ext if ext.startswith(".") else f".{ext}"

    @property
    def excluded_dirs(self) -> Tuple[str, ...]:
        """Path segments whose subtrees are never scanned.

        Returns:
            Tuple of directory names from DCA_EXCLUDED_DIRS (comma separated)
        """
        raw = os.getenv("DCA_EXCLUDED_DIRS")
        if raw is None:
            return DEFAULT_EXCLUDED_DIRS
        return tuple(part.strip() for part in raw.split(",") if part.strip())

    @property
    def log_level(self) -> str:
        return os.getenv("DCA_LOG_LEVEL", "WARNING").upper()

    def analysis_options(self, **overrides) -> AnalysisOptions:
        """Snapshot the current settings, applying explicit overrides.

        Args:
            **overrides: AnalysisOptions fields to replace (None values are ignored)

        Returns:
            AnalysisOptions instance
        """
        options = AnalysisOptions(
            max_workers=self.max_workers,
            min_files_per_worker=self.min_files_per_worker,
            sequential_threshold=self.sequential_threshold,
            use_processes=self.use_processes,
            follow_exports=self.follow_exports,
            source_extension=self.source_extension,
            excluded_dirs=self.excluded_dirs,
        )
        applied = {key: value for key, value in overrides.items() if value is not None}
        return replace(options, **applied)


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config

"""Two-phase parallel analysis.

Phase 1 scans declarations and directives, phase 2 counts usages against
the merged symbol table. Each phase partitions the file list into
contiguous chunks; every worker receives an immutable task and returns a
self-contained partial result. Partials are merged in partition order, so
the output does not depend on completion timing.
"""
import math
import os
import time
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..config import AnalysisOptions
from .directives import DirectiveParser, build_library_groups
from .discovery import discover_source_files, find_package_roots
from .errors import PartitionError
from .models import AnalysisResult, ClassEntity, FunctionEntity, ImportExportFact, ScanResult, UsageResult
from .resolver import PubspecPackageStrategy, VisibilityResolver
from .scanner import EntityScanner
from .usage import UsageCounter, apply_usages

ProgressCallback = Callable[[int], None]
PhaseCallback = Callable[[str, int], None]


@dataclass(frozen=True)
class ScanTask:
    """Phase 1 input for one partition."""
    index: int
    files: Tuple[str, ...]
    options: AnalysisOptions
    known_files: frozenset = frozenset()
    package_roots: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CountTask:
    """Phase 2 input for one partition: its files plus read-only global tables."""
    index: int
    files: Tuple[str, ...]
    classes: Dict[str, ClassEntity]
    functions: Dict[str, FunctionEntity]
    exports: Tuple[ImportExportFact, ...] = ()
    library_groups: Dict[str, str] = field(default_factory=dict)
    package_roots: Dict[str, str] = field(default_factory=dict)


def scan_partition(task: ScanTask, progress: Optional[ProgressCallback] = None) -> ScanResult:
    """Phase 1 worker: scan every file of the partition into a private result."""
    started = time.perf_counter()
    scanner = EntityScanner(
        analyze_functions=task.options.analyze_functions,
        follow_exports=task.options.follow_exports,
        parser=DirectiveParser(task.package_roots),
        known_files=set(task.known_files),
    )
    result = ScanResult()
    visited = set()
    for file_path in task.files:
        scanner.scan_file(file_path, result, visited)
        if progress is not None:
            progress(1)
    logger.debug(
        f"scan partition {task.index}: {len(task.files)} files, {len(result.classes)} classes, "
        f"{len(result.functions)} functions in {time.perf_counter() - started:.2f}s"
    )
    return result


def count_partition(task: CountTask, progress: Optional[ProgressCallback] = None) -> UsageResult:
    """Phase 2 worker: count usages in the partition's files."""
    started = time.perf_counter()
    resolver = VisibilityResolver(
        exports=task.exports,
        library_groups=task.library_groups,
        strategy=PubspecPackageStrategy(task.package_roots),
    )
    counter = UsageCounter(
        task.classes,
        task.functions,
        resolver,
        parser=DirectiveParser(task.package_roots),
        library_groups=task.library_groups,
    )
    result = counter.count_files(task.files, progress)
    logger.debug(
        f"count partition {task.index}: {len(task.files)} files in {time.perf_counter() - started:.2f}s"
    )
    return result


def partition(files: Sequence[str], count: int) -> List[Tuple[str, ...]]:
    """Split files into `count` contiguous chunks whose sizes differ by at most one.

    Args:
        files: Ordered file list
        count: Desired number of chunks (capped at the number of files)

    Returns:
        List of chunks (empty when there are no files)
    """
    if count < 1:
        raise ValueError(f"Partition count must be positive, got {count}")
    if not files:
        return []
    count = min(count, len(files))
    size, extra = divmod(len(files), count)

    chunks = []
    start = 0
    for i in range(count):
        end = start + size + (1 if i < extra else 0)
        chunks.append(tuple(files[start:end]))
        start = end
    return chunks


def plan_workers(file_count: int, options: AnalysisOptions) -> int:
    """Number of partitions for a phase; 1 means run in the calling process."""
    if file_count < options.sequential_threshold:
        return 1
    by_size = math.ceil(file_count / options.min_files_per_worker)
    return max(1, min(options.max_workers, os.cpu_count() or 1, by_size))


class Orchestrator:
    """Drive discovery, both analysis phases and the final merge."""

    def __init__(
        self,
        options: Optional[AnalysisOptions] = None,
        progress: Optional[ProgressCallback] = None,
        on_phase: Optional[PhaseCallback] = None,
    ):
        """Initialize orchestrator.

        Args:
            options: Run options (defaults to AnalysisOptions())
            progress: Called with a file count as work finishes (best effort)
            on_phase: Called with (phase name, file count) when a phase starts
        """
        self.options = options or AnalysisOptions()
        self.progress = progress
        self.on_phase = on_phase

    def run(self, root: Path) -> AnalysisResult:
        """Analyze every source file under root.

        Args:
            root: Project root directory

        Returns:
            AnalysisResult with usage-populated symbol maps

        Raises:
            PreconditionError: If root is missing or not a directory
        """
        files = discover_source_files(root, self.options.source_extension, self.options.excluded_dirs)
        package_roots = find_package_roots(root, self.options.excluded_dirs)
        logger.info(f"Discovered {len(files)} files and {len(package_roots)} packages under {root}")
        return self.analyze_files(files, package_roots)

    def analyze_files(
        self,
        files: Sequence[str],
        package_roots: Optional[Dict[str, str]] = None,
        workers: Optional[int] = None,
    ) -> AnalysisResult:
        """Run both phases over an explicit file list.

        Args:
            files: Absolute file paths (kept in the given order)
            package_roots: Package directory -> package name
            workers: Force a partition count instead of planning one

        Returns:
            AnalysisResult
        """
        files = list(files)
        package_roots = dict(package_roots or {})
        count = workers or plan_workers(len(files), self.options)

        scan = self.scan(files, package_roots, count)
        library_groups = build_library_groups(scan.libraries)

        if scan.classes or scan.functions:
            usage = self.count(files, scan, library_groups, package_roots, count)
            apply_usages(scan.classes, scan.functions, usage)
            warnings = scan.warnings + usage.warnings
        else:
            logger.info("No symbols found, skipping usage analysis")
            warnings = scan.warnings

        return AnalysisResult(
            classes=scan.classes,
            functions=scan.functions,
            exports=scan.exports,
            files=files,
            warnings=warnings,
        )

    def scan(self, files: List[str], package_roots: Dict[str, str], workers: int) -> ScanResult:
        """Phase 1: declarations, exports and library structure."""
        self._phase("scan", len(files))
        known = frozenset(files)
        tasks = [
            ScanTask(index=i, files=chunk, options=self.options, known_files=known, package_roots=package_roots)
            for i, chunk in enumerate(partition(files, workers))
        ]
        merged = ScanResult()
        for partial in self._execute("scan", scan_partition, tasks, ScanResult):
            merged.merge(partial)
        logger.info(
            f"Scan finished: {len(merged.classes)} classes, {len(merged.functions)} functions, "
            f"{len(merged.exports)} exports"
        )
        return merged

    def count(
        self,
        files: List[str],
        scan: ScanResult,
        library_groups: Dict[str, str],
        package_roots: Dict[str, str],
        workers: int,
    ) -> UsageResult:
        """Phase 2: usage counts against the merged symbol table."""
        self._phase("count", len(files))
        tasks = [
            CountTask(
                index=i,
                files=chunk,
                classes=scan.classes,
                functions=scan.functions,
                exports=tuple(scan.exports),
                library_groups=library_groups,
                package_roots=package_roots,
            )
            for i, chunk in enumerate(partition(files, workers))
        ]
        merged = UsageResult()
        for partial in self._execute("count", count_partition, tasks, UsageResult):
            merged.merge(partial)
        logger.info(f"Usage analysis finished over {len(files)} files")
        return merged

    def _phase(self, name: str, total: int) -> None:
        logger.info(f"Phase {name}: {total} files")
        if self.on_phase is not None:
            self.on_phase(name, total)

    def _advance(self, amount: int) -> None:
        if self.progress is not None:
            self.progress(amount)

    def _execute(self, phase: str, worker, tasks: list, empty: Callable) -> list:
        """Run tasks and return their results in task order.

        A single task runs in the calling process. A failing or unspawnable
        partition yields an empty result flagged as failed.
        """
        if not tasks:
            return []
        if len(tasks) == 1:
            task = tasks[0]
            try:
                return [worker(task, self.progress)]
            except Exception as e:
                return [self._failed(phase, task, e, empty)]

        results = [None] * len(tasks)
        pool = ProcessPoolExecutor if self.options.use_processes else ThreadPoolExecutor
        try:
            executor = pool(max_workers=len(tasks))
        except (OSError, NotImplementedError, ValueError) as e:
            return [self._failed(phase, task, e, empty) for task in tasks]

        with executor:
            futures = {}
            for task in tasks:
                try:
                    futures[executor.submit(worker, task)] = task
                except Exception as e:
                    results[task.index] = self._failed(phase, task, e, empty)

            for future in as_completed(futures):
                task = futures[future]
                try:
                    results[task.index] = future.result()
                except Exception as e:
                    results[task.index] = self._failed(phase, task, e, empty)
                self._advance(len(task.files))
        return results

    @staticmethod
    def _failed(phase: str, task, cause: BaseException, empty: Callable):
        error = PartitionError(phase, task.index, task.files, cause)
        logger.warning(str(error))
        result = empty()
        result.warnings.append(str(error))
        result.failed = True
        return result

"""Tests for the two-phase orchestrator."""
from pathlib import Path

import pytest

from dead_code_analyzer.analyzer import orchestrator
from dead_code_analyzer.analyzer.categorize import categorize_classes, categorize_functions
from dead_code_analyzer.analyzer.discovery import discover_source_files, find_package_roots
from dead_code_analyzer.analyzer.errors import PreconditionError
from dead_code_analyzer.analyzer.orchestrator import Orchestrator, partition, plan_workers
from dead_code_analyzer.config import AnalysisOptions


SAMPLE_APP = Path(__file__).parent / "fixtures" / "sample_app"


def names(entities):
    return [e.name for e in entities]


class TestPartition:
    """Contiguous chunking."""

    def test_sizes_differ_by_at_most_one(self):
        files = [f"f{i}.dart" for i in range(10)]
        chunks = partition(files, 3)
        assert [len(c) for c in chunks] == [4, 3, 3]
        assert [f for c in chunks for f in c] == files, "chunks must preserve file order"

    def test_count_capped_by_files(self):
        assert partition(["a.dart", "b.dart"], 5) == [("a.dart",), ("b.dart",)]

    def test_no_files(self):
        assert partition([], 4) == []

    def test_count_must_be_positive(self):
        with pytest.raises(ValueError):
            partition(["a.dart"], 0)


class TestPlanWorkers:
    """Worker count planning."""

    def test_small_runs_stay_sequential(self):
        options = AnalysisOptions(max_workers=8, sequential_threshold=20)
        assert plan_workers(19, options) == 1

    def test_bounded_by_files_per_worker(self, monkeypatch):
        monkeypatch.setattr(orchestrator.os, "cpu_count", lambda: 16)
        options = AnalysisOptions(max_workers=8, sequential_threshold=1, min_files_per_worker=10)
        assert plan_workers(25, options) == 3
        assert plan_workers(500, options) == 8

    def test_bounded_by_cpu_count(self, monkeypatch):
        monkeypatch.setattr(orchestrator.os, "cpu_count", lambda: 2)
        options = AnalysisOptions(max_workers=8, sequential_threshold=1, min_files_per_worker=1)
        assert plan_workers(100, options) == 2


class TestSampleApp:
    """End-to-end run over the bundled Flutter fixture."""

    @pytest.fixture
    def result(self, sequential_options):
        return Orchestrator(sequential_options).run(SAMPLE_APP)

    def test_excluded_directories_not_scanned(self, result):
        assert len(result.files) == 6
        assert not any("/test/" in path for path in result.files)

    def test_class_buckets(self, result):
        buckets = categorize_classes(result.classes)
        assert sorted(names(buckets["commented"])) == ["LegacyBanner", "OldScreen"]
        assert names(buckets["state"]) == ["_CounterState"]
        assert sorted(names(buckets["unused"])) == ["Admin", "_Draft"]
        assert names(buckets["internal_only"]) == ["SampleApp"]
        assert sorted(names(buckets["both"])) == ["Counter", "User"]
        assert buckets["entry_point"] == []
        assert buckets["external_only"] == []

    def test_function_buckets(self, result):
        buckets = categorize_functions(result.functions)
        assert names(buckets["commented_prebuilt"]) == ["dispose"]
        assert sorted(names(buckets["commented"])) == ["refresh", "show"]
        assert names(buckets["entry_point"]) == ["backgroundTask"]
        assert sorted(names(buckets["unused"])) == ["describe", "unusedHelper"]
        assert names(buckets["internal_only"]) == ["_increment"]
        assert names(buckets["external_only"]) == ["formatTitle"]
        assert buckets["both"] == []

    def test_framework_overrides_not_reported(self, result):
        reported = {e.name for e in result.functions.values()}
        assert not reported & {"main", "build", "createState"}

    def test_usage_through_barrel_export(self, result):
        user = next(e for e in result.classes.values() if e.name == "User")
        assert [path.rsplit("/", 1)[-1] for path in user.external_usages] == ["main.dart"]

    def test_export_list_in_output(self, result):
        assert len(result.exports) == 2
        assert all(fact.is_export for fact in result.exports)


class TestDeterminism:
    """Partitioning never changes the output."""

    @pytest.mark.parametrize("workers", [2, 3, 6])
    def test_thread_partitions_match_sequential(self, thread_options, sequential_options, workers):
        files = discover_source_files(SAMPLE_APP)
        roots = find_package_roots(SAMPLE_APP)

        sequential = Orchestrator(sequential_options).analyze_files(files, roots)
        assert len(sequential.functions) == 8, "the comparison must cover functions too"

        actual = Orchestrator(thread_options).analyze_files(files, roots, workers=workers).to_json()
        assert actual == sequential.to_json()

    def test_process_pool_matches_sequential(self, sequential_options):
        files = discover_source_files(SAMPLE_APP)
        roots = find_package_roots(SAMPLE_APP)
        options = AnalysisOptions(max_workers=2, sequential_threshold=1, min_files_per_worker=1)

        expected = Orchestrator(sequential_options).analyze_files(files, roots).to_json()
        actual = Orchestrator(options).analyze_files(files, roots, workers=2).to_json()
        assert actual == expected


class TestFailures:
    """Partition failures are recorded, never raised."""

    def test_failed_scan_partition_is_a_warning(self, make_project, thread_options, monkeypatch):
        root = make_project({
            "lib/a.dart": "class Alpha {}\n",
            "lib/b.dart": "class Beta {}\n",
            "lib/c.dart": "class Gamma {}\n",
        })
        original = orchestrator.scan_partition

        def flaky(task, progress=None):
            if task.index == 1:
                raise RuntimeError("worker crashed")
            return original(task, progress)

        monkeypatch.setattr(orchestrator, "scan_partition", flaky)
        files = discover_source_files(root)
        result = Orchestrator(thread_options).analyze_files(files, find_package_roots(root), workers=2)

        assert sorted(e.name for e in result.classes.values()) == ["Alpha", "Beta"]
        assert len(result.warnings) == 1
        assert "scan partition 1 (1 files) failed: RuntimeError: worker crashed" in result.warnings[0]

    def test_failed_sequential_count_keeps_declarations(self, make_project, sequential_options, monkeypatch):
        root = make_project({"lib/a.dart": "class Alpha {}\n"})

        def broken(task, progress=None):
            raise OSError("disk gone")

        monkeypatch.setattr(orchestrator, "count_partition", broken)
        result = Orchestrator(sequential_options).run(root)

        (alpha,) = result.classes.values()
        assert alpha.total_usages == 0
        assert "count partition 0" in result.warnings[0]

    def test_missing_root(self, tmp_path, sequential_options):
        with pytest.raises(PreconditionError):
            Orchestrator(sequential_options).run(tmp_path / "nope")

    def test_no_symbols_skips_counting(self, make_project, sequential_options, monkeypatch):
        root = make_project({"lib/a.dart": "import 'dart:async';\n"})
        def never(task, progress=None):
            pytest.fail("usage pass must not run without symbols")

        monkeypatch.setattr(orchestrator, "count_partition", never)
        result = Orchestrator(sequential_options).run(root)
        assert result.classes == {}
        assert result.warnings == []


class TestProgress:
    """Progress and phase callbacks."""

    def test_sequential_progress_per_file(self, sequential_options):
        ticks, phases = [], []
        Orchestrator(sequential_options, progress=ticks.append,
                     on_phase=lambda name, total: phases.append((name, total))).run(SAMPLE_APP)

        assert phases == [("scan", 6), ("count", 6)]
        assert ticks == [1] * 12

    def test_parallel_progress_per_partition(self, thread_options):
        ticks = []
        files = discover_source_files(SAMPLE_APP)
        Orchestrator(thread_options, progress=ticks.append).analyze_files(
            files, find_package_roots(SAMPLE_APP), workers=2
        )
        assert sorted(ticks) == [3, 3, 3, 3]

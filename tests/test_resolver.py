"""Tests for cross-file visibility resolution."""
import os

import pytest

from dead_code_analyzer.analyzer.models import ImportExportFact
from dead_code_analyzer.analyzer.resolver import (
    LibSegmentStrategy,
    PubspecPackageStrategy,
    VisibilityResolver,
    normalize_path,
)


APP = "/work/app/lib"
DEFINED = f"{APP}/src/widget.dart"
BARREL = f"{APP}/app.dart"
CONSUMER = f"{APP}/main.dart"


def imp(path, alias=None, show=(), hide=(), source=CONSUMER):
    return ImportExportFact(path=path, source_file=source, as_alias=alias,
                            shown_names=tuple(show), hidden_names=tuple(hide))


def exp(source, path, show=(), hide=()):
    return ImportExportFact(path=path, source_file=source, shown_names=tuple(show),
                            hidden_names=tuple(hide), is_export=True)


class TestPackageStrategies:
    """Path -> package URI mapping."""

    def test_lib_segment(self):
        assert LibSegmentStrategy().to_package_uri(DEFINED) == "package:app/src/widget.dart"
        assert LibSegmentStrategy().to_package_uri("/work/app/bin/tool.dart") is None

    def test_last_lib_segment_wins(self):
        uri = LibSegmentStrategy().to_package_uri("/home/lib/projects/core/lib/a.dart")
        assert uri == "package:core/a.dart"

    def test_pubspec_names_override_directory_names(self):
        strategy = PubspecPackageStrategy({"/mono/packages/core_pkg": "core"})
        assert strategy.to_package_uri("/mono/packages/core_pkg/lib/src/x.dart") == "package:core/src/x.dart"

    def test_pubspec_nested_package_wins(self):
        strategy = PubspecPackageStrategy({"/mono": "root_pkg", "/mono/packages/ui": "ui"})
        assert strategy.to_package_uri("/mono/packages/ui/lib/button.dart") == "package:ui/button.dart"
        assert strategy.to_package_uri("/mono/lib/app.dart") == "package:root_pkg/app.dart"

    def test_pubspec_falls_back_to_lib_segment(self):
        strategy = PubspecPackageStrategy({})
        assert strategy.to_package_uri(DEFINED) == "package:app/src/widget.dart"

    def test_normalize_path(self):
        assert normalize_path("C:\\Work\\\\App\\lib\\A.dart") == "c:/work/app/lib/a.dart"

    @pytest.mark.skipif(os.name == "nt", reason="case-insensitive filesystem")
    def test_posix_paths_keep_case(self):
        assert normalize_path("/work//App/lib/Widget.dart") == "/work/App/lib/Widget.dart"
        resolver = VisibilityResolver(strategy=PubspecPackageStrategy({"/work/app": "app"}))
        assert not resolver.paths_equivalent("/work/app/lib/a.dart", "/work/app/lib/A.dart")


class TestVisibilityRules:
    """The ordered accessibility rules."""

    def test_same_file(self):
        assert VisibilityResolver().is_accessible("Widget", DEFINED, DEFINED, [])

    def test_package_uri_and_path_are_the_same_file(self):
        resolver = VisibilityResolver()
        assert resolver.is_accessible("Widget", DEFINED, "package:app/src/widget.dart", [])

    def test_direct_import(self):
        assert VisibilityResolver().is_accessible("Widget", DEFINED, CONSUMER, [imp(DEFINED)])

    def test_direct_import_via_package_uri(self):
        imports = [imp("package:app/src/widget.dart")]
        assert VisibilityResolver().is_accessible("Widget", DEFINED, CONSUMER, imports)

    def test_not_imported(self):
        assert not VisibilityResolver().is_accessible("Widget", DEFINED, CONSUMER, [])

    def test_show_and_hide_on_import(self):
        resolver = VisibilityResolver()
        assert not resolver.is_accessible("Widget", DEFINED, CONSUMER, [imp(DEFINED, show=["Other"])])
        assert not resolver.is_accessible("Widget", DEFINED, CONSUMER, [imp(DEFINED, hide=["Widget"])])
        assert resolver.is_accessible("Widget", DEFINED, CONSUMER, [imp(DEFINED, show=["Widget"])])

    def test_private_needs_same_library(self):
        resolver = VisibilityResolver(library_groups={f"{APP}/src/part.dart": DEFINED})
        assert not resolver.is_accessible("_Hidden", DEFINED, CONSUMER, [imp(DEFINED)])
        assert resolver.is_accessible("_Hidden", DEFINED, f"{APP}/src/part.dart", [])

    def test_reexport_chain(self):
        resolver = VisibilityResolver(exports=[exp(BARREL, f"{APP}/src/all.dart"), exp(f"{APP}/src/all.dart", DEFINED)])
        assert resolver.is_accessible("Widget", DEFINED, CONSUMER, [imp(BARREL)])

    def test_reexport_respects_show_hide(self):
        resolver = VisibilityResolver(exports=[exp(BARREL, DEFINED, show=["Widget"])])
        assert resolver.is_accessible("Widget", DEFINED, CONSUMER, [imp(BARREL)])
        assert not resolver.is_accessible("Helper", DEFINED, CONSUMER, [imp(BARREL)])

        resolver = VisibilityResolver(exports=[exp(BARREL, DEFINED, hide=["Widget"])])
        assert not resolver.is_accessible("Widget", DEFINED, CONSUMER, [imp(BARREL)])

    def test_export_cycle(self):
        a, b = f"{APP}/a.dart", f"{APP}/b.dart"
        resolver = VisibilityResolver(exports=[exp(a, b), exp(b, a), exp(b, DEFINED)])
        assert resolver.is_accessible("Widget", DEFINED, CONSUMER, [imp(a)])

    def test_core_library_and_implicit_types(self):
        resolver = VisibilityResolver()
        assert resolver.is_accessible("Completer", "dart:async", CONSUMER, [])
        assert resolver.is_accessible("Container", "package:flutter/widgets.dart", CONSUMER, [])
        assert resolver.is_accessible("String", "/sdk/core/string.dart", CONSUMER, [])

    def test_pubspec_strategy_resolves_monorepo_imports(self):
        defined = "/mono/packages/core_pkg/lib/src/model.dart"
        strategy = PubspecPackageStrategy({"/mono/packages/core_pkg": "core"})
        resolver = VisibilityResolver(strategy=strategy)
        imports = [imp("package:core/src/model.dart", source="/mono/apps/shop/lib/main.dart")]
        assert resolver.is_accessible("Model", defined, "/mono/apps/shop/lib/main.dart", imports)


class TestEffectiveName:
    """Alias-qualified names."""

    def test_plain_import(self):
        assert VisibilityResolver().effective_name("Widget", DEFINED, [imp(DEFINED)]) == "Widget"

    def test_aliased_import(self):
        assert VisibilityResolver().effective_name("Widget", DEFINED, [imp(DEFINED, alias="w")]) == "w.Widget"

    @pytest.mark.parametrize("order", [0, 1])
    def test_plain_import_wins(self, order):
        imports = [imp(DEFINED, alias="w"), imp(DEFINED)]
        if order:
            imports.reverse()
        assert VisibilityResolver().effective_name("Widget", DEFINED, imports) == "Widget"

    def test_alias_through_barrel(self):
        resolver = VisibilityResolver(exports=[exp(BARREL, DEFINED)])
        assert resolver.effective_name("Widget", DEFINED, [imp(BARREL, alias="app")]) == "app.Widget"

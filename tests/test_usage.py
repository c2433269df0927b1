"""Tests for cross-file usage counting."""
import pytest

from dead_code_analyzer.analyzer.categorize import categorize_classes, categorize_functions
from dead_code_analyzer.analyzer.comments import SourceMask
from dead_code_analyzer.analyzer.errors import PreconditionError
from dead_code_analyzer.analyzer.orchestrator import Orchestrator
from dead_code_analyzer.analyzer.resolver import VisibilityResolver
from dead_code_analyzer.analyzer.usage import UsageCounter, count_class_usages, count_class_usages_in_line


def analyze(project, options):
    return Orchestrator(options).run(project)


def find(entities, name, file_suffix=None):
    matches = [
        e for e in entities.values()
        if e.name == name and not e.commented_out
        and (file_suffix is None or e.defined_in_file.endswith(file_suffix))
    ]
    assert len(matches) == 1, f"expected exactly one active {name}, got {len(matches)}"
    return matches[0]


class TestScenarios:
    """Reference scenarios for class and function usage."""

    def test_unreferenced_class_is_unused(self, make_project, sequential_options):
        root = make_project({"lib/a.dart": "class Foo {}\n"})
        result = analyze(root, sequential_options)

        foo = find(result.classes, "Foo")
        assert foo.internal_usage_count == 0
        assert foo.external_usages == {}
        assert foo in categorize_classes(result.classes)["unused"]

    def test_shown_import_counts_each_call(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": "class Foo {}\n",
            "lib/b.dart": """
                import 'a.dart' show Foo;

                void build() {
                  final one = Foo();
                  final two = Foo();
                }
            """,
        })
        result = analyze(root, sequential_options)

        foo = find(result.classes, "Foo")
        b_file = str(root.resolve() / "lib" / "b.dart")
        assert foo.external_usages == {b_file: 2}

    def test_hidden_import_is_not_a_usage(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": "class Foo {}\n",
            "lib/b.dart": """
                import 'a.dart' hide Foo;

                void build() {
                  Foo();
                }
            """,
        })
        result = analyze(root, sequential_options)
        assert find(result.classes, "Foo").external_usages == {}

    def test_commented_class_has_distinct_key(self, make_project, sequential_options):
        root = make_project({"lib/a.dart": "// class Bar {}\nclass Bar {}\n"})
        result = analyze(root, sequential_options)

        bars = [e for e in result.classes.values() if e.name == "Bar"]
        assert len(bars) == 2
        assert {bar.commented_out for bar in bars} == {True, False}
        assert len({bar.key for bar in bars}) == 2

    def test_entry_point_function_without_calls(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": """
                @pragma('vm:entry-point')
                void onBackground() {}
            """,
        })
        result = analyze(root, sequential_options)

        handler = find(result.functions, "onBackground")
        assert handler.is_entry_point
        assert handler.total_usages == 0
        assert handler in categorize_functions(result.functions)["entry_point"]


class TestMaskedText:
    """Comments and string literals are never usages."""

    def test_comment_and_string_mentions_ignored(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": "class Foo {}\n",
            "lib/b.dart": """
                import 'a.dart';

                // Foo is mentioned only in prose
                const label = 'Foo()';
                /* Foo() inside a block comment */
            """,
        })
        result = analyze(root, sequential_options)
        assert find(result.classes, "Foo").external_usages == {}

    def test_line_counter_ignores_masked_source(self):
        source = SourceMask("var a = Foo();\n// Foo();\nvar s = 'Foo()';\n")
        assert count_class_usages(source, "Foo") == 1


class TestClassShapes:
    """Individual class usage shapes on a single line."""

    @pytest.mark.parametrize("line,count", [
        ("Foo? current;", 1),
        ("final items = <Foo>[];", 1),
        ("Foo.create();", 1),
        ("if (value is Foo) {", 1),
        ("void take(Foo foo) {}", 1),
        ("Foo build() {", 1),
        ("class Bar extends Foo {", 1),
        ("class Bar with Mixin, Foo {", 1),
        ("Foo foo = Foo();", 1),
        ("Map<String, Foo> byId = {};", 1),
        ("FooBar();", 0),
        ("myFoo();", 0),
    ])
    def test_shapes(self, line, count):
        assert count_class_usages_in_line(line, "Foo") == count

    def test_aliased_name(self):
        assert count_class_usages_in_line("final x = app.Foo();", "app.Foo") == 1


class TestVisibility:
    """Accessibility gates external counts."""

    def test_private_class_not_counted_from_other_library(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": "class _Secret {}\nclass Open {}\n",
            "lib/b.dart": """
                import 'a.dart';

                void use() {
                  _Secret();
                  Open();
                }
            """,
        })
        result = analyze(root, sequential_options)
        assert find(result.classes, "_Secret").external_usages == {}
        assert find(result.classes, "Open").total_external_usages == 1

    def test_aliased_import(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": "class Foo {}\n",
            "lib/b.dart": """
                import 'a.dart' as a;

                void use() {
                  a.Foo();
                  Foo();
                }
            """,
        })
        result = analyze(root, sequential_options)
        assert find(result.classes, "Foo").total_external_usages == 1, \
            "only the prefixed reference resolves through an aliased import"

    def test_reexported_class(self, make_project, sequential_options):
        root = make_project({
            "lib/src/model.dart": "class Model {}\n",
            "lib/app.dart": "export 'src/model.dart';\n",
            "lib/main.dart": """
                import 'package:app/app.dart';

                void start() {
                  Model();
                }
            """,
        })
        result = analyze(root, sequential_options)
        assert find(result.classes, "Model").total_external_usages == 1

    def test_part_file_uses_library_imports(self, make_project, sequential_options):
        root = make_project({
            "lib/models.dart": "class Item {}\n",
            "lib/shop.dart": "import 'models.dart';\n\npart 'cart.dart';\n",
            "lib/cart.dart": """
                part of 'shop.dart';

                class _Cart {
                  final items = <Item>[];
                }
            """,
        })
        result = analyze(root, sequential_options)
        item = find(result.classes, "Item")
        assert [path.rsplit("/", 1)[-1] for path in item.external_usages] == ["cart.dart"]


class TestFunctionUsage:
    """Function and method call sites."""

    def test_top_level_function_calls(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": "int twice(int x) => x * 2;\n",
            "lib/b.dart": """
                import 'a.dart';

                int quad(int x) {
                  return twice(twice(x));
                }
            """,
        })
        result = analyze(root, sequential_options)

        twice = find(result.functions, "twice")
        assert twice.internal_usage_count == 0, "the definition itself is not a usage"
        assert twice.total_external_usages == 2
        assert find(result.functions, "quad").total_usages == 0

    def test_method_call_and_tear_off(self, make_project, sequential_options):
        root = make_project({
            "lib/cart.dart": """
                class Cart {
                  void checkout() {}

                  void _recalculate() {}

                  void bind(Button button) {
                    button.onTap = checkout;
                  }
                }
            """,
            "lib/pay.dart": """
                import 'cart.dart';

                void pay(Cart cart) {
                  cart.checkout();
                  cart._recalculate();
                }
            """,
        })
        result = analyze(root, sequential_options)

        checkout = find(result.functions, "checkout")
        assert checkout.internal_usage_count == 1
        assert checkout.total_external_usages == 1
        assert find(result.functions, "_recalculate").total_external_usages == 0

    def test_recursive_call_on_declaration_line_not_counted(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": """
                int fact(int n) => n <= 1 ? 1 : n * fact(n - 1);
                int twiceFact(int n) => 2 * fact(n);
            """,
        })
        result = analyze(root, sequential_options)
        assert find(result.functions, "fact").internal_usage_count == 1, \
            "only the call outside the declaration line counts"

    def test_aliased_function_needs_prefix(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": "int helper() => 1;\n",
            "lib/b.dart": """
                import 'a.dart' as a;

                class B {
                  int helper() => 2;

                  int run() {
                    return helper() + a.helper();
                  }
                }
            """,
        })
        result = analyze(root, sequential_options)
        helper = find(result.functions, "helper", "a.dart")
        assert helper.total_external_usages == 1, "the bare call resolves to B.helper"

    def test_method_tear_off_and_property_access(self, make_project, sequential_options):
        root = make_project({
            "lib/cart.dart": """
                class Cart {
                  void process(int item) {}
                }
            """,
            "lib/run.dart": """
                import 'cart.dart';

                void run(Cart cart, List<int> items) {
                  items.forEach(cart.process);
                  final handler = cart.process;
                }
            """,
        })
        result = analyze(root, sequential_options)
        assert find(result.functions, "process").total_external_usages == 2

    def test_function_mentioned_in_string_not_counted(self, make_project, sequential_options):
        root = make_project({
            "lib/a.dart": """
                void refresh() {}

                void log() {
                  print('refresh() was called');
                }
            """,
        })
        result = analyze(root, sequential_options)
        assert find(result.functions, "refresh").total_usages == 0


class TestUsageCounter:
    """Direct counter behaviour."""

    def test_empty_symbol_tables_rejected(self):
        with pytest.raises(PreconditionError):
            UsageCounter({}, {}, VisibilityResolver())

    def test_unreadable_file_is_a_warning(self, tmp_path):
        from dead_code_analyzer.analyzer.models import ClassEntity

        foo = ClassEntity(name="Foo", defined_in_file="/p/lib/a.dart")
        counter = UsageCounter({foo.key: foo}, {}, VisibilityResolver())
        result = counter.count_files([str(tmp_path / "gone.dart")])
        assert len(result.warnings) == 1

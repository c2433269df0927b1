"""Sort analyzed symbols into report buckets."""
from typing import Dict, List

from .models import ClassEntity, FunctionEntity

CLASS_BUCKETS = ("commented", "entry_point", "state", "unused", "internal_only", "external_only", "both")
FUNCTION_BUCKETS = (
    "commented_prebuilt", "commented", "prebuilt_empty", "entry_point",
    "unused", "internal_only", "external_only", "both",
)


def _usage_bucket(internal: int, external: int) -> str:
    if internal == 0 and external == 0:
        return "unused"
    if external == 0:
        return "internal_only"
    if internal == 0:
        return "external_only"
    return "both"


def categorize_classes(classes: Dict[str, ClassEntity]) -> Dict[str, List[ClassEntity]]:
    """Bucket classes; the first matching bucket wins.

    Args:
        classes: Analyzed class map

    Returns:
        Dict of bucket name -> entities sorted by (file, line)
    """
    buckets: Dict[str, List[ClassEntity]] = {name: [] for name in CLASS_BUCKETS}
    for entity in classes.values():
        if entity.commented_out:
            bucket = "commented"
        elif entity.is_entry_point:
            bucket = "entry_point"
        elif entity.kind == "state_class":
            bucket = "state"
        else:
            bucket = _usage_bucket(entity.internal_usage_count, entity.total_external_usages)
        buckets[bucket].append(entity)

    for members in buckets.values():
        members.sort(key=lambda e: (e.defined_in_file, e.declaration_line, e.name))
    return buckets


def categorize_functions(functions: Dict[str, FunctionEntity]) -> Dict[str, List[FunctionEntity]]:
    """Bucket functions; the first matching bucket wins.

    Commented-out framework lifecycle overrides get their own bucket: they
    are disabled on purpose, not dead. Live prebuilt framework methods are
    only reported when their body is empty.

    Args:
        functions: Analyzed function map

    Returns:
        Dict of bucket name -> entities sorted by (file, line)
    """
    buckets: Dict[str, List[FunctionEntity]] = {name: [] for name in FUNCTION_BUCKETS}
    for entity in functions.values():
        if entity.commented_out:
            bucket = "commented_prebuilt" if entity.is_prebuilt_framework_method_commented_out else "commented"
        elif entity.is_prebuilt_framework_method:
            if not entity.is_empty_body:
                continue
            bucket = "prebuilt_empty"
        elif entity.is_entry_point:
            bucket = "entry_point"
        else:
            bucket = _usage_bucket(entity.internal_usage_count, entity.total_external_usages)
        buckets[bucket].append(entity)

    for members in buckets.values():
        members.sort(key=lambda e: (e.defined_in_file, e.declaration_line, e.name))
    return buckets

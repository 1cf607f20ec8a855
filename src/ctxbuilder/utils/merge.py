import copy
import logging
from typing import Dict, List

logger = logging.getLogger(__name__)


def _union(base: List, extra: List) -> List:
    # items compare by their string form so unhashable entries work too
    known = {str(item) for item in base}
    result = list(base)
    for item in extra:
        if str(item) not in known:
            known.add(str(item))
            result.append(copy.deepcopy(item))
    return result


def deep_merge(parent: Dict, child: Dict) -> Dict:
    """
    Merge `child` on top of `parent` and return a new dict.

    Nested dicts merge key by key, lists become the union of both in
    order, any other child value replaces the parent's. Neither argument
    is modified.
    """
    merged = copy.deepcopy(parent)
    for key, value in child.items():
        if key not in merged:
            merged[key] = copy.deepcopy(value)
        elif isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        elif isinstance(merged[key], list) and isinstance(value, list):
            merged[key] = _union(merged[key], value)
        else:
            if type(merged[key]) is not type(value):
                logger.debug(f"[Merge] '{key}' changes type from {type(merged[key]).__name__} to {type(value).__name__}")
            merged[key] = copy.deepcopy(value)
    return merged

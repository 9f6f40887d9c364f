# frota/checklists.py
from __future__ import annotations

import enum
from collections import defaultdict
from typing import Any, Dict, Iterable, List

from frota.models import ItemStatus


class ChecklistStatus(str, enum.Enum):
    OK = "OK"
    CORRECTED = "CORRECTED"
    PROBLEM = "PROBLEM"


def _get(obj: Any, key: str, attr: str | None = None) -> Any:
    # items come either as stored JSON dicts or as schema objects
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, attr or key, None)


def problem_item_ids(checklist) -> List[str]:
    return [
        _get(item, "id")
        for item in (_get(checklist, "items") or [])
        if _get(item, "status") == ItemStatus.PROBLEM
    ]


def derive_checklist_status(checklist, actions: Iterable) -> ChecklistStatus:
    """
    Classify a checklist from its PROBLEM items and their corrective actions.

    - no PROBLEM item                          -> OK
    - every PROBLEM item has a verified action -> OK
    - every PROBLEM item has some action       -> CORRECTED
    - any PROBLEM item without actions         -> PROBLEM
    Actions belonging to other checklists are ignored.
    """
    problems = problem_item_ids(checklist)
    if not problems:
        return ChecklistStatus.OK

    checklist_id = _get(checklist, "id")
    by_item: Dict[str, List[Any]] = defaultdict(list)
    for action in actions:
        if _get(action, "checklistId", "checklist_id") != checklist_id:
            continue
        by_item[_get(action, "itemId", "item_id")].append(action)

    if any(not by_item.get(item_id) for item_id in problems):
        return ChecklistStatus.PROBLEM
    if all(any(_get(a, "verified") for a in by_item[item_id]) for item_id in problems):
        return ChecklistStatus.OK
    return ChecklistStatus.CORRECTED

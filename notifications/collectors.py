"""Recipient resolution: who gets notified, and with which shift lines."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .config import ACTIVE_STATUS, EMPLOYEE_ROLE
from .models import RecipientGroup, ShiftSummary
from .store import ScheduleStore
from .weeks import date_for_week_day

LOGGER = logging.getLogger(__name__)


def is_employee_role(role: Any) -> bool:
    tokens = str(role or "").strip().lower().split(",")
    return any(token.strip() == EMPLOYEE_ROLE for token in tokens)


def is_active_status(status: Any) -> bool:
    return str(status or "").strip().lower() == ACTIVE_STATUS


def is_active_employee(role: Any, status: Any) -> bool:
    return is_employee_role(role) and is_active_status(status)


def normalize_ids(values: Optional[Iterable[Any]]) -> List[int]:
    """Keep integer-like ids in input order, dropping anything else."""
    ids: List[int] = []
    for value in values or []:
        if isinstance(value, bool):
            continue
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            continue
        if number not in ids:
            ids.append(number)
    return ids


def summarize_shift(row: Dict[str, Any]) -> ShiftSummary:
    day_name = (row.get("day_name") or "").strip()
    return ShiftSummary(
        date=date_for_week_day(row.get("week_code") or "", day_name),
        day_name=day_name,
        start=row.get("start_time") or "",
        end=row.get("end_time") or "",
    )


def group_shift_rows(rows: Iterable[Dict[str, Any]]) -> Dict[int, RecipientGroup]:
    groups: Dict[int, RecipientGroup] = {}
    for row in rows:
        emp_id = int(row["employee_id"])
        group = groups.get(emp_id)
        if group is None:
            group = groups[emp_id] = RecipientGroup(recipient_id=emp_id, name=row.get("employee_name"))
        group.shifts.append(summarize_shift(row))
    return groups


class RecipientResolver:
    def __init__(self, store: ScheduleStore) -> None:
        self.store = store

    def resolve(self, shift_ids: Optional[Iterable[Any]] = None) -> Dict[int, RecipientGroup]:
        """Shift owners plus every active employee, each exactly once."""
        ids = normalize_ids(shift_ids)
        groups = group_shift_rows(self.store.shift_rows(ids)) if ids else {}

        # Stale ids resolving to nothing still fall through to the union below.
        for user in self.store.active_employee_candidates():
            if not is_active_employee(user.get("role"), user.get("status")):
                continue
            emp_id = int(user["id"])
            group = groups.get(emp_id)
            if group is None:
                groups[emp_id] = RecipientGroup(recipient_id=emp_id, name=user.get("full_name"))
            elif not group.name:
                group.name = user.get("full_name")
        return groups

    def resolve_explicit(
        self, recipient_ids: Iterable[Any], week_code: Optional[str] = None
    ) -> Dict[int, RecipientGroup]:
        """Exactly the given recipients; shift lines only when a week is given."""
        ids = normalize_ids(recipient_ids)
        groups: Dict[int, RecipientGroup] = {emp_id: RecipientGroup(recipient_id=emp_id) for emp_id in ids}
        if week_code:
            for emp_id, found in group_shift_rows(self.store.shift_rows_for_week(week_code, ids)).items():
                if emp_id in groups:
                    groups[emp_id] = found
        return groups

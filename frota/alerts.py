# frota/alerts.py
from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from frota.models import TaskPriority, TaskStatus, TransactionStatus, VehicleType
from frota.money import from_cents, to_cents
from frota.schemas import CamelModel

OIL_WARNING_KM = 5000
CNH_WARNING_DAYS = 30


class Severity(str, enum.Enum):
    URGENT = "URGENT"
    ATTENTION = "ATTENTION"


class CnhStatus(str, enum.Enum):
    EXPIRED = "EXPIRED"
    EXPIRING_SOON = "EXPIRING_SOON"
    VALID = "VALID"


class Alert(CamelModel):
    vehicle_id: str
    kind: str  # OIL_CHANGE | TASK
    severity: Severity
    message: str
    remaining_km: Optional[int] = None
    task_id: Optional[str] = None


class FleetSummary(CamelModel):
    total_vehicles: int
    normal: int
    attention: int
    urgent: int


class DriverLicense(CamelModel):
    driver_id: str
    name: str
    cnh_expiration: Optional[date] = None
    days_left: Optional[int] = None
    status: Optional[CnhStatus] = None


class DueToday(CamelModel):
    count: int
    total: Decimal
    transaction_ids: List[str]


def oil_change_severity(current_km: int, next_oil_change_km: int) -> Optional[Severity]:
    remaining = (next_oil_change_km or 0) - (current_km or 0)
    if remaining <= 0:
        return Severity.URGENT
    if remaining < OIL_WARNING_KM:
        return Severity.ATTENTION
    return None


def _oil_alerts(vehicles: Iterable) -> List[Alert]:
    alerts: List[Alert] = []
    for v in vehicles:
        if v.type == VehicleType.TRAILER:
            continue
        if v.type != VehicleType.TRUCK:
            raise ValueError(f"Unknown vehicle type {v.type!r}")
        severity = oil_change_severity(v.current_km, v.next_oil_change_km)
        if severity is None:
            continue
        remaining = (v.next_oil_change_km or 0) - (v.current_km or 0)
        if remaining < 0:
            message = f"{v.plate}: oil change overdue by {abs(remaining)} km"
        else:
            message = f"{v.plate}: {remaining} km to oil change"
        alerts.append(Alert(
            vehicle_id=v.id,
            kind="OIL_CHANGE",
            severity=severity,
            message=message,
            remaining_km=remaining,
        ))
    return alerts


def _task_alerts(tasks: Iterable) -> List[Alert]:
    return [
        Alert(
            vehicle_id=t.vehicle_id,
            kind="TASK",
            severity=Severity.URGENT if t.priority == TaskPriority.HIGH else Severity.ATTENTION,
            message=t.description,
            task_id=t.id,
        )
        for t in tasks
        if t.status == TaskStatus.PENDING
    ]


def build_alerts(vehicles: Iterable, tasks: Iterable) -> List[Alert]:
    """Truck oil-change alerts followed by pending task alerts, URGENT first.

    sorted() is stable, so entries of equal severity keep their input order.
    """
    merged = _oil_alerts(vehicles) + _task_alerts(tasks)
    return sorted(merged, key=lambda a: 0 if a.severity == Severity.URGENT else 1)


def fleet_summary(vehicles: List, alerts: List[Alert]) -> FleetSummary:
    oil = [a for a in alerts if a.kind == "OIL_CHANGE"]
    urgent = sum(1 for a in oil if a.severity == Severity.URGENT)
    attention = sum(1 for a in oil if a.severity == Severity.ATTENTION)
    trucks = sum(1 for v in vehicles if v.type == VehicleType.TRUCK)
    trailers = sum(1 for v in vehicles if v.type == VehicleType.TRAILER)
    return FleetSummary(
        total_vehicles=len(vehicles),
        normal=trucks - urgent - attention + trailers,
        attention=attention,
        urgent=urgent,
    )


def cnh_days_left(expiration: Optional[date], today: date) -> Optional[int]:
    if expiration is None:
        return None
    return (expiration - today).days


def cnh_status(expiration: Optional[date], today: date) -> Optional[CnhStatus]:
    days = cnh_days_left(expiration, today)
    if days is None:
        return None
    if days < 0:
        return CnhStatus.EXPIRED
    if days < CNH_WARNING_DAYS:
        return CnhStatus.EXPIRING_SOON
    return CnhStatus.VALID


def driver_licenses(drivers: Iterable, today: date) -> List[DriverLicense]:
    return [
        DriverLicense(
            driver_id=d.id,
            name=d.name,
            cnh_expiration=d.cnh_expiration,
            days_left=cnh_days_left(d.cnh_expiration, today),
            status=cnh_status(d.cnh_expiration, today),
        )
        for d in drivers
    ]


def due_today(transactions: Iterable, today: date) -> DueToday:
    pending = [
        t for t in transactions
        if t.status == TransactionStatus.PENDING and t.due_date == today
    ]
    return DueToday(
        count=len(pending),
        total=from_cents(sum(to_cents(t.amount) for t in pending)),
        transaction_ids=[t.id for t in pending],
    )

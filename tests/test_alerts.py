from datetime import date
from decimal import Decimal
from types import SimpleNamespace as NS

import pytest

from frota.alerts import (
    CnhStatus,
    Severity,
    build_alerts,
    cnh_status,
    due_today,
    fleet_summary,
    oil_change_severity,
)


def _truck(vid, current_km, next_km):
    return NS(id=vid, type="CAVALO", plate=vid.upper(), current_km=current_km, next_oil_change_km=next_km)


def _trailer(vid):
    return NS(id=vid, type="CARRETA", plate=vid.upper(), current_km=None, next_oil_change_km=None)


def _task(tid, priority, status="PENDING"):
    return NS(id=tid, vehicle_id="v1", description=f"task {tid}", priority=priority, status=status)


class TestOilChangeSeverity:
    @pytest.mark.parametrize(
        "current_km, expected",
        [
            (95001, Severity.ATTENTION),  # 4999 left
            (100000, Severity.URGENT),    # 0 left
            (101000, Severity.URGENT),    # overdue
            (95000, None),                # exactly 5000 left
            (50000, None),
        ],
    )
    def test_boundaries(self, current_km, expected):
        assert oil_change_severity(current_km, 100000) == expected

    def test_negative_kms_are_taken_as_is(self):
        assert oil_change_severity(-10, -5) == Severity.ATTENTION


class TestBuildAlerts:
    def test_trailers_never_alert(self):
        assert build_alerts([_trailer("t1")], []) == []

    def test_tasks_high_is_urgent_and_done_tasks_are_skipped(self):
        result = build_alerts([], [_task("a", "HIGH"), _task("b", "LOW"), _task("c", "HIGH", status="DONE")])
        assert [(a.task_id, a.severity) for a in result] == [("a", Severity.URGENT), ("b", Severity.ATTENTION)]

    def test_urgent_first_and_stable_within_severity(self):
        vehicles = [
            _truck("v1", 96000, 100000),   # attention
            _truck("v2", 100500, 100000),  # urgent
            _truck("v3", 99000, 100000),   # attention
        ]
        tasks = [_task("t1", "MEDIUM"), _task("t2", "HIGH")]
        result = build_alerts(vehicles, tasks)
        keys = [a.task_id or a.vehicle_id for a in result]
        assert keys == ["v2", "t2", "v1", "v3", "t1"]

    def test_remaining_km_is_reported(self):
        (alert,) = build_alerts([_truck("v1", 96000, 100000)], [])
        assert alert.remaining_km == 4000
        assert alert.kind == "OIL_CHANGE"

    def test_unknown_vehicle_type_is_rejected(self):
        with pytest.raises(ValueError):
            build_alerts([NS(id="x", type="MOTO", plate="X", current_km=0, next_oil_change_km=0)], [])


def test_fleet_summary_counts_trailers_as_normal():
    vehicles = [_truck("v1", 100000, 100000), _truck("v2", 96000, 100000), _truck("v3", 0, 100000), _trailer("t1")]
    summary = fleet_summary(vehicles, build_alerts(vehicles, [_task("x", "HIGH")]))
    assert (summary.total_vehicles, summary.urgent, summary.attention, summary.normal) == (4, 1, 1, 2)


@pytest.mark.parametrize(
    "expiration, expected",
    [
        (date(2024, 5, 31), CnhStatus.EXPIRED),
        (date(2024, 6, 1), CnhStatus.EXPIRING_SOON),
        (date(2024, 6, 30), CnhStatus.EXPIRING_SOON),
        (date(2024, 7, 1), CnhStatus.VALID),
        (None, None),
    ],
)
def test_cnh_status(expiration, expected):
    assert cnh_status(expiration, date(2024, 6, 1)) == expected


def test_due_today_only_counts_pending():
    today = date(2024, 6, 10)
    txs = [
        NS(id="a", status="PENDING", due_date=today, amount=Decimal("100.10")),
        NS(id="b", status="PENDING", due_date=today, amount=Decimal("0.20")),
        NS(id="c", status="PAID", due_date=today, amount=Decimal("50")),
        NS(id="d", status="PENDING", due_date=date(2024, 6, 11), amount=Decimal("70")),
    ]
    result = due_today(txs, today)
    assert result.count == 2
    assert result.total == Decimal("100.30")
    assert result.transaction_ids == ["a", "b"]

# frota/crud.py
from __future__ import annotations

import calendar
import enum
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Type

import bcrypt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from frota import models, schemas
from frota.checklists import derive_checklist_status
from frota.money import commission_for, from_cents, quantize, to_cents
from frota.reports import first_of_month, shift_month

logger = logging.getLogger(__name__)

TRIP_MODULE = "TRIP_MODULE"
OIL_CHANGE_INTERVAL_KM = 30000


class NotFoundError(LookupError):
    pass


# ---------- Helpers ----------

def bcrypt_hash(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def bcrypt_verify(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.strip().encode("utf-8"))
    except ValueError:
        # malformed hash in the row
        return False


def _plain(data: Dict[str, Any]) -> Dict[str, Any]:
    """Enum members -> their stored string value."""
    return {k: (v.value if isinstance(v, enum.Enum) else v) for k, v in data.items()}


def get_or_404(db: Session, model: Type[models.Base], obj_id, label: Optional[str] = None):
    obj = db.get(model, obj_id)
    if obj is None:
        raise NotFoundError(f"{label or model.__name__} {obj_id} not found")
    return obj


def list_rows(db: Session, model: Type[models.Base], *order_by) -> List[Any]:
    q = db.query(model)
    if order_by:
        q = q.order_by(*order_by)
    return q.all()


def create_row(db: Session, model: Type[models.Base], data: Dict[str, Any], created_by: Optional[str] = None):
    data = _plain(data)
    if data.get("id") is None:
        data.pop("id", None)
    obj = model(**data, created_by=created_by)
    db.add(obj); db.commit(); db.refresh(obj)
    logger.info("Created %s %s", model.__tablename__, obj.id)
    return obj


def reject_nulls(model: Type[models.Base], data: Dict[str, Any]) -> None:
    """A partial update may leave a field out, never blank a NOT NULL column."""
    columns = model.__table__.columns
    blanked = sorted(k for k, v in data.items() if v is None and k in columns and not columns[k].nullable)
    if blanked:
        raise ValueError(f"Fields {blanked} cannot be empty")


def update_row(db: Session, model: Type[models.Base], obj_id, data: Dict[str, Any]):
    obj = get_or_404(db, model, obj_id)
    reject_nulls(model, data)
    for k, v in _plain(data).items():
        setattr(obj, k, v)
    db.commit(); db.refresh(obj)
    return obj


def delete_row(db: Session, model: Type[models.Base], obj_id) -> None:
    obj = get_or_404(db, model, obj_id)
    db.delete(obj); db.commit()
    logger.info("Deleted %s %s", model.__tablename__, obj_id)


def _commit_or_rollback(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("%s rolled back", what)
        raise


def add_months(d: date, months: int) -> date:
    """Same day N calendar months later, clamped to the end of shorter months."""
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


# ---------- VEHICLE ----------

TRUCK_FIELDS = {"model", "current_km", "next_oil_change_km"}
TRAILER_FIELDS = {"axles", "last_lubrication_date"}


def vehicle_out(obj: models.Vehicle):
    if obj.type == models.VehicleType.TRUCK:
        return schemas.Truck.model_validate(obj)
    if obj.type == models.VehicleType.TRAILER:
        return schemas.Trailer.model_validate(obj)
    raise ValueError(f"Unknown vehicle type {obj.type!r}")


def get_vehicles(db: Session) -> List[models.Vehicle]:
    return list_rows(db, models.Vehicle, models.Vehicle.plate.asc())


def create_vehicle(db: Session, vehicle, created_by: Optional[str] = None) -> models.Vehicle:
    if not isinstance(vehicle, (schemas.TruckCreate, schemas.TrailerCreate)):
        raise ValueError(f"Unsupported vehicle payload {type(vehicle).__name__}")
    # each variant only dumps its own fields, the other type's columns stay NULL
    data = vehicle.model_dump()
    data["plate"] = data["plate"].strip().upper()
    return create_row(db, models.Vehicle, data, created_by)


def update_vehicle(db: Session, vehicle_id: str, upd: schemas.VehicleUpdate) -> models.Vehicle:
    obj = get_or_404(db, models.Vehicle, vehicle_id, "Vehicle")
    data = upd.model_dump(exclude_unset=True)
    if obj.type == models.VehicleType.TRUCK:
        foreign = TRAILER_FIELDS & data.keys()
    elif obj.type == models.VehicleType.TRAILER:
        foreign = TRUCK_FIELDS & data.keys()
    else:
        raise ValueError(f"Unknown vehicle type {obj.type!r}")
    if foreign:
        raise ValueError(f"Fields {sorted(foreign)} do not apply to a {obj.type} vehicle")
    if data.get("plate"):
        data["plate"] = data["plate"].strip().upper()
    return update_row(db, models.Vehicle, vehicle_id, data)


def register_oil_change(db: Session, vehicle_id: str, change: schemas.OilChange) -> models.Vehicle:
    obj = get_or_404(db, models.Vehicle, vehicle_id, "Vehicle")
    if obj.type != models.VehicleType.TRUCK:
        raise ValueError("Oil changes are only tracked for trucks")
    next_km = change.next_oil_change_km
    if next_km is None:
        next_km = change.current_km + OIL_CHANGE_INTERVAL_KM
    if next_km <= change.current_km:
        raise ValueError("Next oil change must be ahead of the current mileage")
    obj.current_km = change.current_km
    obj.next_oil_change_km = next_km
    db.commit(); db.refresh(obj)
    logger.info("Oil change registered for %s at %s km (next %s)", obj.plate, obj.current_km, next_km)
    return obj


def delete_vehicle(db: Session, vehicle_id: str) -> None:
    delete_row(db, models.Vehicle, vehicle_id)


# ---------- DRIVER ----------

def get_drivers(db: Session) -> List[models.Driver]:
    return list_rows(db, models.Driver, models.Driver.name.asc())


def create_driver(db: Session, driver: schemas.DriverCreate, created_by: Optional[str] = None) -> models.Driver:
    data = driver.model_dump(exclude={"password"})
    if driver.cpf and db.query(models.Driver).filter(models.Driver.cpf == driver.cpf).first():
        raise ValueError(f"CPF {driver.cpf} already registered")
    if driver.password:
        data["password_hash"] = bcrypt_hash(driver.password)
    return create_row(db, models.Driver, data, created_by)


def update_driver(db: Session, driver_id: str, upd: schemas.DriverUpdate) -> models.Driver:
    data = upd.model_dump(exclude_unset=True)
    if "password" in data:
        if data["password"]:
            data["password_hash"] = bcrypt_hash(data["password"])
        del data["password"]
    return update_row(db, models.Driver, driver_id, data)


def delete_driver(db: Session, driver_id: str) -> None:
    delete_row(db, models.Driver, driver_id)


def authenticate_driver(db: Session, cpf: str, password: str) -> Optional[models.Driver]:
    d = db.query(models.Driver).filter(models.Driver.cpf == schemas.clean_cpf(cpf)).first()
    if not d:
        return None
    if bcrypt_verify(password, d.password_hash):
        return d
    return None


# ---------- CHECKLIST ----------

def get_checklists(db: Session, vehicle_id: Optional[str] = None) -> List[models.Checklist]:
    q = db.query(models.Checklist)
    if vehicle_id:
        q = q.filter(models.Checklist.vehicle_id == vehicle_id)
    return q.order_by(models.Checklist.date.desc()).all()


def create_checklist(
    db: Session,
    checklist: schemas.ChecklistCreate,
    created_by: Optional[str] = None,
    driver: Optional[models.Driver] = None,
) -> models.Checklist:
    get_or_404(db, models.Vehicle, checklist.vehicle_id, "Vehicle")
    if not checklist.items:
        raise ValueError("A checklist needs at least one item")
    obj = models.Checklist(
        vehicle_id=checklist.vehicle_id,
        date=checklist.date or datetime.utcnow(),
        items=[i.model_dump(mode="json", by_alias=True, exclude_none=True) for i in checklist.items],
        type=checklist.type.value,
        driver_id=driver.id if driver else None,
        driver_name=driver.name if driver else None,
        created_by=created_by,
    )
    if checklist.id:
        obj.id = checklist.id
    db.add(obj); db.commit(); db.refresh(obj)
    logger.info("Checklist %s recorded for vehicle %s", obj.id, obj.vehicle_id)
    return obj


def checklist_with_status(db: Session, checklist_id: str) -> schemas.ChecklistWithStatus:
    obj = get_or_404(db, models.Checklist, checklist_id, "Checklist")
    base = schemas.Checklist.model_validate(obj)
    return schemas.ChecklistWithStatus(
        **base.model_dump(),
        derived_status=derive_checklist_status(obj, obj.actions).value,
        actions=[schemas.CorrectiveAction.model_validate(a) for a in obj.actions],
    )


def delete_checklist(db: Session, checklist_id: str) -> None:
    obj = get_or_404(db, models.Checklist, checklist_id, "Checklist")
    for action in list(obj.actions):
        db.delete(action)
    db.query(models.Transaction).filter(models.Transaction.checklist_id == checklist_id).update(
        {models.Transaction.checklist_id: None}, synchronize_session=False
    )
    db.delete(obj)
    _commit_or_rollback(db, f"Delete of checklist {checklist_id}")


# ---------- CORRECTIVE ACTION ----------

def get_corrective_actions(db: Session, checklist_id: Optional[str] = None) -> List[models.CorrectiveAction]:
    q = db.query(models.CorrectiveAction)
    if checklist_id:
        q = q.filter(models.CorrectiveAction.checklist_id == checklist_id)
    return q.order_by(models.CorrectiveAction.created_at.asc()).all()


def add_corrective_action(
    db: Session, checklist_id: str, action: schemas.CorrectiveActionCreate, created_by: Optional[str] = None
) -> models.CorrectiveAction:
    checklist = get_or_404(db, models.Checklist, checklist_id, "Checklist")
    item_ids = {item.get("id") for item in (checklist.items or [])}
    if action.item_id not in item_ids:
        raise ValueError(f"Item {action.item_id} is not part of checklist {checklist_id}")
    obj = models.CorrectiveAction(checklist_id=checklist_id, **action.model_dump(), created_by=created_by)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj


def verify_corrective_action(db: Session, action_id: str, verify: schemas.CorrectiveActionVerify) -> models.CorrectiveAction:
    obj = get_or_404(db, models.CorrectiveAction, action_id, "Corrective action")
    obj.verified = True
    obj.verified_by = verify.verified_by
    obj.verified_at = datetime.utcnow()
    db.commit(); db.refresh(obj)
    logger.info("Corrective action %s verified by %s", action_id, verify.verified_by)
    return obj


# ---------- CHECKLIST DEFINITION ----------

def get_checklist_definitions(
    db: Session,
    active_only: bool = False,
    checklist_type: Optional[str] = None,
    vehicle: Optional[models.Vehicle] = None,
) -> List[models.ChecklistDefinition]:
    """
    Definitions ordered by category and name. For a maintenance checklist on
    a given vehicle only the items scoped to ALL or to that vehicle's kind
    are returned; loading checklists ignore the scope.
    """
    q = db.query(models.ChecklistDefinition)
    if active_only:
        q = q.filter(models.ChecklistDefinition.is_active.is_(True))
    if checklist_type:
        q = q.filter(models.ChecklistDefinition.type == checklist_type)
    rows = q.order_by(models.ChecklistDefinition.category.asc(), models.ChecklistDefinition.name.asc()).all()
    if vehicle is None or checklist_type != models.ChecklistType.MAINTENANCE:
        return rows
    if vehicle.type == models.VehicleType.TRUCK:
        scope = models.VehicleScope.TRUCK
    elif vehicle.type == models.VehicleType.TRAILER:
        scope = models.VehicleScope.TRAILER
    else:
        raise ValueError(f"Unknown vehicle type {vehicle.type!r}")
    return [d for d in rows if d.vehicle_scope in (None, models.VehicleScope.ALL, scope)]


def toggle_checklist_definition(db: Session, definition_id: str) -> models.ChecklistDefinition:
    obj = get_or_404(db, models.ChecklistDefinition, definition_id, "Checklist definition")
    obj.is_active = not obj.is_active
    db.commit(); db.refresh(obj)
    return obj


# ---------- MAINTENANCE TASK ----------

def get_maintenance_tasks(db: Session, status: Optional[str] = None) -> List[models.MaintenanceTask]:
    q = db.query(models.MaintenanceTask)
    if status:
        q = q.filter(models.MaintenanceTask.status == status)
    return q.order_by(models.MaintenanceTask.created_at.asc()).all()


def create_maintenance_task(
    db: Session, task: schemas.MaintenanceTaskCreate, created_by: Optional[str] = None
) -> models.MaintenanceTask:
    get_or_404(db, models.Vehicle, task.vehicle_id, "Vehicle")
    return create_row(db, models.MaintenanceTask, task.model_dump(), created_by)


def complete_maintenance_task(
    db: Session, task_id: str, done: schemas.MaintenanceTaskComplete, created_by: Optional[str] = None
) -> models.MaintenanceTask:
    """Mark the task DONE and, when asked, post its cost as a pending expense in the same commit."""
    task = get_or_404(db, models.MaintenanceTask, task_id, "Maintenance task")
    if task.status == models.TaskStatus.DONE:
        raise ValueError(f"Maintenance task {task_id} is already done")
    if done.create_expense and to_cents(task.cost) <= 0:
        raise ValueError("Task has no cost to post as an expense")
    task.status = models.TaskStatus.DONE.value

    if done.create_expense:
        tx = models.Transaction(
            description=f"Manutenção - {task.description}",
            amount=quantize(task.cost),
            type=models.TransactionType.EXPENSE.value,
            status=models.TransactionStatus.PENDING.value,
            due_date=date.today(),
            category="MAINTENANCE",
            vehicle_id=task.vehicle_id,
            account_id=done.account_id,
            supplier_id=done.supplier_id,
            created_by=created_by,
        )
        db.add(tx)
        db.flush()
        task.transaction_id = tx.id

    _commit_or_rollback(db, f"Completion of maintenance task {task_id}")
    db.refresh(task)
    logger.info("Maintenance task %s done (expense %s)", task_id, task.transaction_id)
    return task


# ---------- TRANSACTION ----------

def get_transactions(
    db: Session,
    month: Optional[str] = None,
    type: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> List[models.Transaction]:
    q = db.query(models.Transaction)
    if month:
        start = first_of_month(month)
        end = first_of_month(shift_month(month, 1))
        q = q.filter(models.Transaction.due_date >= start, models.Transaction.due_date < end)
    if type:
        q = q.filter(models.Transaction.type == type)
    if status:
        q = q.filter(models.Transaction.status == status)
    if search:
        q = q.filter(models.Transaction.description.ilike(f"%{search}%"))
    return q.order_by(models.Transaction.due_date.asc()).all()


def _transaction_fields(tx: schemas.TransactionBase) -> Dict[str, Any]:
    if to_cents(tx.amount) <= 0:
        raise ValueError("Amount must be greater than zero")
    data = tx.model_dump()
    if tx.status == models.TransactionStatus.PAID and tx.payment_date is None:
        data["payment_date"] = tx.due_date
    return _plain(data)


def create_transaction(db: Session, tx: schemas.TransactionCreate, created_by: Optional[str] = None) -> models.Transaction:
    return create_row(db, models.Transaction, _transaction_fields(tx), created_by)


def update_transaction(db: Session, tx_id: str, upd: schemas.TransactionUpdate) -> models.Transaction:
    obj = get_or_404(db, models.Transaction, tx_id, "Transaction")
    data = upd.model_dump(exclude_unset=True)
    reject_nulls(models.Transaction, data)
    if "amount" in data and to_cents(data["amount"]) <= 0:
        raise ValueError("Amount must be greater than zero")
    status = data.get("status")
    if status == models.TransactionStatus.PAID and not data.get("payment_date") and not obj.payment_date:
        data["payment_date"] = data.get("due_date") or obj.due_date
    elif status == models.TransactionStatus.PENDING and "payment_date" not in data:
        data["payment_date"] = None
    return update_row(db, models.Transaction, tx_id, data)


def pay_transaction(db: Session, tx_id: str, pay: schemas.TransactionPay) -> models.Transaction:
    obj = get_or_404(db, models.Transaction, tx_id, "Transaction")
    if obj.status == models.TransactionStatus.CANCELLED:
        raise ValueError("A cancelled transaction cannot be paid")
    if obj.status == models.TransactionStatus.PAID:
        raise ValueError(f"Transaction {tx_id} is already paid on {obj.payment_date}")
    obj.status = models.TransactionStatus.PAID.value
    obj.payment_date = pay.payment_date or date.today()
    if pay.account_id:
        obj.account_id = pay.account_id
    db.commit(); db.refresh(obj)
    logger.info("Transaction %s paid on %s", tx_id, obj.payment_date)
    return obj


def _unlink_transactions(db: Session, ids: Iterable[str]) -> None:
    ids = list(ids)
    db.query(models.FuelEntry).filter(models.FuelEntry.transaction_id.in_(ids)).update(
        {models.FuelEntry.transaction_id: None}, synchronize_session=False
    )
    db.query(models.MaintenanceTask).filter(models.MaintenanceTask.transaction_id.in_(ids)).update(
        {models.MaintenanceTask.transaction_id: None}, synchronize_session=False
    )


def delete_transaction(db: Session, tx_id: str) -> None:
    obj = get_or_404(db, models.Transaction, tx_id, "Transaction")
    _unlink_transactions(db, [tx_id])
    db.delete(obj)
    _commit_or_rollback(db, f"Delete of transaction {tx_id}")


def delete_transactions(db: Session, ids: List[str]) -> int:
    if not ids:
        return 0
    _unlink_transactions(db, ids)
    count = (
        db.query(models.Transaction)
        .filter(models.Transaction.id.in_(ids))
        .delete(synchronize_session=False)
    )
    _commit_or_rollback(db, f"Bulk delete of {len(ids)} transactions")
    logger.info("Bulk deleted %s transactions", count)
    return count


def create_installments(
    db: Session, tx: schemas.InstallmentsCreate, created_by: Optional[str] = None
) -> List[models.Transaction]:
    """
    Recurring expense: the same amount once per month, N times.
    Every installment starts PENDING with no payment date.
    """
    if tx.type != models.TransactionType.EXPENSE:
        raise ValueError("Only expenses can be split into installments")
    base = _transaction_fields(tx)
    base.pop("installments", None)
    base.pop("id", None)
    base["status"] = models.TransactionStatus.PENDING.value
    base["payment_date"] = None

    rows = []
    for i in range(tx.installments):
        row = models.Transaction(
            **{
                **base,
                "description": f"{tx.description} ({i + 1}/{tx.installments})",
                "due_date": add_months(tx.due_date, i),
            },
            created_by=created_by,
        )
        db.add(row)
        rows.append(row)
    _commit_or_rollback(db, f"Installments for {tx.description!r}")
    for row in rows:
        db.refresh(row)
    logger.info("Created %s installments for %r", len(rows), tx.description)
    return rows


def create_income_with_commission(
    db: Session, tx: schemas.TransactionCreate, created_by: Optional[str] = None
) -> List[models.Transaction]:
    """Income plus a pending 10% commission expense owed to the driver."""
    if tx.type != models.TransactionType.INCOME:
        raise ValueError("Commission can only be generated from an income")
    income = models.Transaction(**{**_transaction_fields(tx), "commission_value": None}, created_by=created_by)
    commission = models.Transaction(
        description=f"Comissão - {tx.description}",
        amount=commission_for(tx.amount),
        type=models.TransactionType.EXPENSE.value,
        status=models.TransactionStatus.PENDING.value,
        due_date=tx.due_date,
        category="COMMISSION",
        driver_id=tx.driver_id,
        vehicle_id=tx.vehicle_id,
        created_by=created_by,
    )
    db.add_all([income, commission])
    _commit_or_rollback(db, f"Income with commission {tx.description!r}")
    db.refresh(income); db.refresh(commission)
    return [income, commission]


# ---------- FUEL ----------

def get_fuel_entries(db: Session, vehicle_id: Optional[str] = None) -> List[models.FuelEntry]:
    q = db.query(models.FuelEntry)
    if vehicle_id:
        q = q.filter(models.FuelEntry.vehicle_id == vehicle_id)
    return q.order_by(models.FuelEntry.date.desc()).all()


def _fuel_total(liters: Decimal, price: Decimal, total: Optional[Decimal]) -> Decimal:
    if total is not None:
        return quantize(total)
    return quantize(Decimal(str(liters)) * Decimal(str(price)))


def create_fuel_entry(db: Session, entry: schemas.FuelEntryCreate, created_by: Optional[str] = None) -> models.FuelEntry:
    """Fuel entry plus its paid FUEL expense, committed together."""
    vehicle = get_or_404(db, models.Vehicle, entry.vehicle_id, "Vehicle")
    data = _plain(entry.model_dump())
    data["total_cost"] = _fuel_total(entry.liters, entry.price_per_liter, entry.total_cost)

    tx = models.Transaction(
        description=f"Abastecimento - {vehicle.plate}",
        amount=data["total_cost"],
        type=models.TransactionType.EXPENSE.value,
        status=models.TransactionStatus.PAID.value,
        due_date=entry.date,
        payment_date=entry.date,
        category="FUEL",
        payment_method=data.get("payment_method"),
        account_id=entry.account_id,
        vehicle_id=entry.vehicle_id,
        supplier_id=entry.supplier_id,
        driver_id=entry.driver_id,
        created_by=created_by,
    )
    db.add(tx)
    db.flush()
    obj = models.FuelEntry(**data, transaction_id=tx.id, created_by=created_by)
    db.add(obj)
    _commit_or_rollback(db, f"Fuel entry for {vehicle.plate}")
    db.refresh(obj)
    logger.info("Fuel entry %s (%s L) posted as transaction %s", obj.id, obj.liters, tx.id)
    return obj


def update_fuel_entry(db: Session, entry_id: str, upd: schemas.FuelEntryUpdate) -> models.FuelEntry:
    obj = get_or_404(db, models.FuelEntry, entry_id, "Fuel entry")
    data = _plain(upd.model_dump(exclude_unset=True))
    reject_nulls(models.FuelEntry, data)
    for k, v in data.items():
        setattr(obj, k, v)
    if "total_cost" not in data and ({"liters", "price_per_liter"} & data.keys()):
        obj.total_cost = _fuel_total(obj.liters, obj.price_per_liter, None)

    if obj.transaction_id:
        tx = db.get(models.Transaction, obj.transaction_id)
        if tx is not None:
            tx.amount = obj.total_cost
            tx.due_date = obj.date
            if tx.status == models.TransactionStatus.PAID:
                tx.payment_date = obj.date
    _commit_or_rollback(db, f"Update of fuel entry {entry_id}")
    db.refresh(obj)
    return obj


def delete_fuel_entry(db: Session, entry_id: str) -> None:
    obj = get_or_404(db, models.FuelEntry, entry_id, "Fuel entry")
    tx = db.get(models.Transaction, obj.transaction_id) if obj.transaction_id else None
    db.delete(obj)
    if tx is not None:
        db.flush()
        db.delete(tx)
    _commit_or_rollback(db, f"Delete of fuel entry {entry_id}")


# ---------- TRIP ----------

def get_trips(db: Session, status: Optional[str] = None) -> List[models.Trip]:
    q = db.query(models.Trip)
    if status:
        q = q.filter(models.Trip.status == status)
    return q.order_by(models.Trip.start_date.desc()).all()


def start_trip(db: Session, trip: schemas.TripStart, created_by: Optional[str] = None) -> models.Trip:
    vehicle = get_or_404(db, models.Vehicle, trip.vehicle_id, "Vehicle")
    data = trip.model_dump()
    if not data.get("driver_id"):
        data["driver_id"] = vehicle.default_driver_id
    obj = models.Trip(
        **data,
        freight_amount=Decimal("0"),
        extra_expenses_amount=Decimal("0"),
        fuel_amount=Decimal("0"),
        commission_amount=Decimal("0"),
        status=models.TripStatus.IN_PROGRESS.value,
        created_by=created_by,
    )
    db.add(obj); db.commit(); db.refresh(obj)
    logger.info("Trip %s started from %s", obj.id, obj.start_location)
    return obj


def complete_trip(db: Session, trip_id: str, done: schemas.TripComplete) -> schemas.TripCompletion:
    """
    Close a trip and post its financial entries in one commit.

    Up to three PENDING transactions are written, all due on the end date:
    freight income (when create_income), extra expenses (when create_expense
    and > 0) and the driver's 10% commission (when with_commission and > 0).
    """
    trip = get_or_404(db, models.Trip, trip_id, "Trip")
    if trip.status == models.TripStatus.COMPLETED:
        raise ValueError(f"Trip {trip_id} is already completed")
    if done.end_km < trip.start_km:
        raise ValueError("End km cannot be lower than start km")
    if done.end_date < trip.start_date:
        raise ValueError("End date cannot be before start date")

    freight = quantize(done.freight_amount)
    extra = quantize(done.extra_expenses_amount)
    commission = commission_for(freight) if done.with_commission else from_cents(0)

    trip.end_location = done.end_location
    trip.end_km = done.end_km
    trip.end_date = done.end_date
    trip.freight_amount = freight
    trip.extra_expenses_amount = extra
    trip.fuel_amount = quantize(done.fuel_amount)
    trip.fuel_litres = done.fuel_litres
    trip.fuel_price = done.fuel_price
    trip.commission_amount = commission
    trip.status = models.TripStatus.COMPLETED.value

    common = dict(
        status=models.TransactionStatus.PENDING.value,
        due_date=done.end_date,
        vehicle_id=trip.vehicle_id,
        driver_id=trip.driver_id,
        trip_id=trip.id,
        created_by=TRIP_MODULE,
    )
    route = f"{trip.start_location} x {done.end_location}"
    posted: List[models.Transaction] = []
    if done.create_income:
        posted.append(models.Transaction(
            description=f"Frete - {route}",
            amount=freight,
            type=models.TransactionType.INCOME.value,
            category="FREIGHT",
            customer_id=done.customer_id,
            **common,
        ))
    if done.create_expense and to_cents(extra) > 0:
        posted.append(models.Transaction(
            description=f"Despesas Extras - Viagem {trip.start_location}",
            amount=extra,
            type=models.TransactionType.EXPENSE.value,
            category="MAINTENANCE",
            supplier_id=done.supplier_id,
            **common,
        ))
    if done.with_commission and to_cents(commission) > 0:
        posted.append(models.Transaction(
            description=f"Comissão Viagem - {route}",
            amount=commission,
            type=models.TransactionType.EXPENSE.value,
            category="COMMISSION",
            **common,
        ))
    db.add_all(posted)
    _commit_or_rollback(db, f"Completion of trip {trip_id}")

    db.refresh(trip)
    for tx in posted:
        db.refresh(tx)
    logger.info("Trip %s completed with %s transactions", trip_id, len(posted))
    return schemas.TripCompletion(
        trip=schemas.Trip.model_validate(trip),
        transactions=[schemas.Transaction.model_validate(t) for t in posted],
    )


TRIP_CLOSING_FIELDS = {
    "end_location", "end_km", "end_date", "freight_amount", "extra_expenses_amount",
    "fuel_amount", "fuel_litres", "fuel_price", "with_commission",
}
TRIP_MONEY_FIELDS = {"freight_amount", "extra_expenses_amount", "fuel_amount"}


def update_trip(db: Session, trip_id: str, upd: schemas.TripUpdate) -> models.Trip:
    """
    Edit a trip. A trip in progress only takes driver and notes, its closing
    data goes through complete_trip. A completed trip can have its closing
    data corrected; the commission is recomputed at 10% of the freight,
    kept when it was elected before unless with_commission says otherwise.
    Transactions already posted for the trip are left as they are.
    """
    trip = get_or_404(db, models.Trip, trip_id, "Trip")
    data = upd.model_dump(exclude_unset=True)
    reject_nulls(models.Trip, data)
    if trip.status != models.TripStatus.COMPLETED:
        closing = sorted(TRIP_CLOSING_FIELDS & data.keys())
        if closing:
            raise ValueError(f"Trip {trip_id} is in progress, complete it to set {closing}")
    blank_end = sorted(k for k in ("end_location", "end_km", "end_date") if k in data and data[k] is None)
    if blank_end:
        raise ValueError(f"Fields {blank_end} cannot be empty on a completed trip")

    end_km = data.get("end_km", trip.end_km)
    end_date = data.get("end_date", trip.end_date)
    if end_km is not None and end_km < trip.start_km:
        raise ValueError("End km cannot be lower than start km")
    if end_date is not None and end_date < trip.start_date:
        raise ValueError("End date cannot be before start date")

    elected = data.pop("with_commission", None)
    for k in TRIP_MONEY_FIELDS & data.keys():
        data[k] = quantize(data[k])
    for k, v in data.items():
        setattr(trip, k, v)

    if trip.status == models.TripStatus.COMPLETED:
        if elected is None:
            elected = to_cents(trip.commission_amount) > 0
        trip.commission_amount = commission_for(trip.freight_amount) if elected else from_cents(0)

    _commit_or_rollback(db, f"Update of trip {trip_id}")
    db.refresh(trip)
    logger.info("Trip %s updated (%s)", trip_id, ", ".join(sorted(data)) or "commission only")
    return trip


def delete_trip(db: Session, trip_id: str) -> None:
    delete_row(db, models.Trip, trip_id)


# ---------- USER ----------

def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.username == username).first()


def has_users(db: Session) -> bool:
    return db.query(models.User).first() is not None


def create_user(db: Session, username: str, password: str, is_admin: bool = False) -> models.User:
    username = username.strip()
    if not username or not password:
        raise ValueError("Username and password are required")
    if get_user_by_username(db, username):
        raise ValueError(f"User {username} already exists")
    obj = models.User(username=username, password_hash=bcrypt_hash(password), is_admin=is_admin)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj


def verify_user(db: Session, username: str, password: str) -> Optional[models.User]:
    u = get_user_by_username(db, username.strip())
    if not u:
        return None
    if bcrypt_verify(password, u.password_hash):
        return u
    return None

# frota/stores.py
"""
Per-domain stores: the cached collections of one session plus the write
operations on them. Every write goes through ``crud`` and is followed by a
full refetch of the store, so readers never see a half-updated cache.
"""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from frota import alerts, crud, models, reports, schemas
from frota.checklists import derive_checklist_status


class FleetStore:
    def __init__(self, db: Session, user_id: Optional[str] = None) -> None:
        self.db = db
        self.user_id = user_id
        self.vehicles: List[models.Vehicle] = []
        self.drivers: List[models.Driver] = []
        self.checklists: List[models.Checklist] = []
        self.corrective_actions: List[models.CorrectiveAction] = []
        self.maintenance_tasks: List[models.MaintenanceTask] = []
        self.refresh()

    def refresh(self) -> "FleetStore":
        self.vehicles = crud.get_vehicles(self.db)
        self.drivers = crud.get_drivers(self.db)
        self.checklists = crud.get_checklists(self.db)
        self.corrective_actions = crud.get_corrective_actions(self.db)
        self.maintenance_tasks = crud.get_maintenance_tasks(self.db)
        return self

    # vehicles
    def add_vehicle(self, vehicle) -> models.Vehicle:
        obj = crud.create_vehicle(self.db, vehicle, self.user_id)
        self.refresh()
        return obj

    def update_vehicle(self, vehicle_id: str, upd: schemas.VehicleUpdate) -> models.Vehicle:
        obj = crud.update_vehicle(self.db, vehicle_id, upd)
        self.refresh()
        return obj

    def delete_vehicle(self, vehicle_id: str) -> None:
        crud.delete_vehicle(self.db, vehicle_id)
        self.refresh()

    # drivers
    def add_driver(self, driver: schemas.DriverCreate) -> models.Driver:
        obj = crud.create_driver(self.db, driver, self.user_id)
        self.refresh()
        return obj

    def update_driver(self, driver_id: str, upd: schemas.DriverUpdate) -> models.Driver:
        obj = crud.update_driver(self.db, driver_id, upd)
        self.refresh()
        return obj

    def delete_driver(self, driver_id: str) -> None:
        crud.delete_driver(self.db, driver_id)
        self.refresh()

    # checklists are write-once
    def add_checklist(self, checklist: schemas.ChecklistCreate) -> models.Checklist:
        obj = crud.create_checklist(self.db, checklist, self.user_id)
        self.refresh()
        return obj

    def delete_checklist(self, checklist_id: str) -> None:
        crud.delete_checklist(self.db, checklist_id)
        self.refresh()

    def add_corrective_action(self, checklist_id: str, action: schemas.CorrectiveActionCreate) -> models.CorrectiveAction:
        obj = crud.add_corrective_action(self.db, checklist_id, action, self.user_id)
        self.refresh()
        return obj

    def verify_corrective_action(self, action_id: str, verify: schemas.CorrectiveActionVerify) -> models.CorrectiveAction:
        obj = crud.verify_corrective_action(self.db, action_id, verify)
        self.refresh()
        return obj

    # maintenance tasks
    def add_maintenance_task(self, task: schemas.MaintenanceTaskCreate) -> models.MaintenanceTask:
        obj = crud.create_maintenance_task(self.db, task, self.user_id)
        self.refresh()
        return obj

    def update_maintenance_task(self, task_id: str, upd: schemas.MaintenanceTaskUpdate) -> models.MaintenanceTask:
        obj = crud.update_row(self.db, models.MaintenanceTask, task_id, upd.model_dump(exclude_unset=True))
        self.refresh()
        return obj

    def delete_maintenance_task(self, task_id: str) -> None:
        crud.delete_row(self.db, models.MaintenanceTask, task_id)
        self.refresh()

    def complete_maintenance_task(self, task_id: str, done: schemas.MaintenanceTaskComplete) -> models.MaintenanceTask:
        obj = crud.complete_maintenance_task(self.db, task_id, done, self.user_id)
        self.refresh()
        return obj

    # derived
    def checklist_status(self, checklist: models.Checklist) -> str:
        return derive_checklist_status(checklist, self.corrective_actions).value

    def current_alerts(self) -> List[alerts.Alert]:
        return alerts.build_alerts(self.vehicles, self.maintenance_tasks)

    def summary(self) -> alerts.FleetSummary:
        return alerts.fleet_summary(self.vehicles, self.current_alerts())

    def driver_licenses(self, today: date) -> List[alerts.DriverLicense]:
        return alerts.driver_licenses(self.drivers, today)


class FinancialStore:
    def __init__(self, db: Session, user_id: Optional[str] = None) -> None:
        self.db = db
        self.user_id = user_id
        self.accounts: List[models.FinancialAccount] = []
        self.suppliers: List[models.Supplier] = []
        self.customers: List[models.Customer] = []
        self.transactions: List[models.Transaction] = []
        self.fuel_entries: List[models.FuelEntry] = []
        self.trips: List[models.Trip] = []
        self.refresh()

    def refresh(self) -> "FinancialStore":
        self.accounts = crud.list_rows(self.db, models.FinancialAccount, models.FinancialAccount.name.asc())
        self.suppliers = crud.list_rows(self.db, models.Supplier, models.Supplier.trade_name.asc())
        self.customers = crud.list_rows(self.db, models.Customer, models.Customer.trade_name.asc())
        self.transactions = crud.get_transactions(self.db)
        self.fuel_entries = crud.get_fuel_entries(self.db)
        self.trips = crud.get_trips(self.db)
        return self

    # accounts / counterparts
    def add_account(self, account: schemas.FinancialAccountCreate) -> models.FinancialAccount:
        obj = crud.create_row(self.db, models.FinancialAccount, account.model_dump(), self.user_id)
        self.refresh()
        return obj

    def update_account(self, account_id: str, upd: schemas.FinancialAccountUpdate) -> models.FinancialAccount:
        obj = crud.update_row(self.db, models.FinancialAccount, account_id, upd.model_dump(exclude_unset=True))
        self.refresh()
        return obj

    def delete_account(self, account_id: str) -> None:
        crud.delete_row(self.db, models.FinancialAccount, account_id)
        self.refresh()

    def add_supplier(self, supplier: schemas.SupplierCreate) -> models.Supplier:
        obj = crud.create_row(self.db, models.Supplier, supplier.model_dump(), self.user_id)
        self.refresh()
        return obj

    def update_supplier(self, supplier_id: str, upd: schemas.SupplierUpdate) -> models.Supplier:
        obj = crud.update_row(self.db, models.Supplier, supplier_id, upd.model_dump(exclude_unset=True))
        self.refresh()
        return obj

    def delete_supplier(self, supplier_id: str) -> None:
        crud.delete_row(self.db, models.Supplier, supplier_id)
        self.refresh()

    def add_customer(self, customer: schemas.CustomerCreate) -> models.Customer:
        obj = crud.create_row(self.db, models.Customer, customer.model_dump(), self.user_id)
        self.refresh()
        return obj

    def update_customer(self, customer_id: str, upd: schemas.CustomerUpdate) -> models.Customer:
        obj = crud.update_row(self.db, models.Customer, customer_id, upd.model_dump(exclude_unset=True))
        self.refresh()
        return obj

    def delete_customer(self, customer_id: str) -> None:
        crud.delete_row(self.db, models.Customer, customer_id)
        self.refresh()

    # transactions
    def add_transaction(self, tx: schemas.TransactionCreate) -> models.Transaction:
        obj = crud.create_transaction(self.db, tx, self.user_id)
        self.refresh()
        return obj

    def add_installments(self, tx: schemas.InstallmentsCreate) -> List[models.Transaction]:
        rows = crud.create_installments(self.db, tx, self.user_id)
        self.refresh()
        return rows

    def add_income_with_commission(self, tx: schemas.TransactionCreate) -> List[models.Transaction]:
        rows = crud.create_income_with_commission(self.db, tx, self.user_id)
        self.refresh()
        return rows

    def update_transaction(self, tx_id: str, upd: schemas.TransactionUpdate) -> models.Transaction:
        obj = crud.update_transaction(self.db, tx_id, upd)
        self.refresh()
        return obj

    def pay_transaction(self, tx_id: str, pay: schemas.TransactionPay) -> models.Transaction:
        obj = crud.pay_transaction(self.db, tx_id, pay)
        self.refresh()
        return obj

    def delete_transaction(self, tx_id: str) -> None:
        crud.delete_transaction(self.db, tx_id)
        self.refresh()

    def delete_transactions(self, ids: List[str]) -> int:
        count = crud.delete_transactions(self.db, ids)
        self.refresh()
        return count

    # fuel
    def add_fuel_entry(self, entry: schemas.FuelEntryCreate) -> models.FuelEntry:
        obj = crud.create_fuel_entry(self.db, entry, self.user_id)
        self.refresh()
        return obj

    def update_fuel_entry(self, entry_id: str, upd: schemas.FuelEntryUpdate) -> models.FuelEntry:
        obj = crud.update_fuel_entry(self.db, entry_id, upd)
        self.refresh()
        return obj

    def delete_fuel_entry(self, entry_id: str) -> None:
        crud.delete_fuel_entry(self.db, entry_id)
        self.refresh()

    # trips
    def start_trip(self, trip: schemas.TripStart) -> models.Trip:
        obj = crud.start_trip(self.db, trip, self.user_id)
        self.refresh()
        return obj

    def complete_trip(self, trip_id: str, done: schemas.TripComplete) -> schemas.TripCompletion:
        result = crud.complete_trip(self.db, trip_id, done)
        self.refresh()
        return result

    def update_trip(self, trip_id: str, upd: schemas.TripUpdate) -> models.Trip:
        obj = crud.update_trip(self.db, trip_id, upd)
        self.refresh()
        return obj

    def delete_trip(self, trip_id: str) -> None:
        crud.delete_trip(self.db, trip_id)
        self.refresh()

    # derived figures, recomputed from the cached lists on every call
    def cash_summary(self) -> reports.CashSummary:
        return reports.cash_summary(self.accounts, self.transactions)

    def account_balances(self):
        return reports.account_balances(self.accounts, self.transactions)

    def month_balance(self, month: str) -> reports.MonthBalance:
        return reports.month_balance(self.accounts, self.transactions, month)

    def profit_and_loss(self, month: str) -> reports.ProfitAndLoss:
        return reports.profit_and_loss(self.transactions, month)

    def driver_statement(self, driver_id: str, month: str) -> reports.DriverStatement:
        return reports.driver_statement(driver_id, self.transactions, month)

    def completed_trips(self) -> List[models.Trip]:
        return [t for t in self.trips if t.status == models.TripStatus.COMPLETED]

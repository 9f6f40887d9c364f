# main.py (project root)

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Form, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from frota import alerts, backup, crud, models, reports, schemas
from frota.config import settings
from frota.db import get_db, init_db
from frota.stores import FinancialStore, FleetStore

logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

# ---------------- App ----------------

init_db()

app = FastAPI(title="Frota - Gestão de Frota e Financeiro", version="1.0.0")
app.add_middleware(SessionMiddleware, secret_key=settings.session_key)


# ---------------- Errors ----------------

def _not_found(request: Request, exc: crud.NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


def _bad_request(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


def _backend_failure(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # the request session is closed (and rolled back) by get_db
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Não foi possível concluir a operação. Tente novamente."},
    )


app.add_exception_handler(crud.NotFoundError, _not_found)
app.add_exception_handler(ValueError, _bad_request)
app.add_exception_handler(SQLAlchemyError, _backend_failure)


# ---------------- Helpers ----------------

def get_current_user(request: Request, db: Session) -> Optional[models.User]:
    uid = request.session.get("user_id")
    return db.get(models.User, uid) if uid else None


def require_login(request: Request, db: Session = Depends(get_db)) -> models.User:
    user = get_current_user(request, db)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    return user


def require_driver(request: Request, db: Session = Depends(get_db)) -> models.Driver:
    driver_id = request.session.get("driver_id")
    driver = db.get(models.Driver, driver_id) if driver_id else None
    if not driver:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Driver login required")
    return driver


def fleet_store(db: Session = Depends(get_db), user: models.User = Depends(require_login)) -> FleetStore:
    return FleetStore(db, str(user.id))


def financial_store(db: Session = Depends(get_db), user: models.User = Depends(require_login)) -> FinancialStore:
    return FinancialStore(db, str(user.id))


def current_month() -> str:
    return reports.month_key(date.today())


def _checklist_out(checklist: models.Checklist, store: FleetStore) -> schemas.ChecklistWithStatus:
    actions = [a for a in store.corrective_actions if a.checklist_id == checklist.id]
    base = schemas.Checklist.model_validate(checklist)
    return schemas.ChecklistWithStatus(
        **base.model_dump(),
        derived_status=store.checklist_status(checklist),
        actions=[schemas.CorrectiveAction.model_validate(a) for a in actions],
    )


OK = {"ok": True}


# ---------------- Health / Ping ----------------

@app.get("/__ping")
def ping() -> Dict[str, bool]:
    return {"pong": True}


@app.get("/health")
def health() -> Dict[str, bool]:
    return {"ok": True}


# ---------------- First-time Setup ----------------

@app.get("/setup")
def setup_status(db: Session = Depends(get_db)) -> Dict[str, bool]:
    return {"needsSetup": not crud.has_users(db)}


@app.post("/setup", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def setup_do(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    if crud.has_users(db):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Setup already done")
    user = crud.create_user(db, username, password, is_admin=True)
    request.session["user_id"] = user.id
    logger.info("Initial admin %s created", user.username)
    return user


# ---------------- Auth ----------------

@app.post("/login", response_model=schemas.User)
def login_do(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    u = crud.verify_user(db, username, password)
    if not u:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials.")
    request.session["user_id"] = u.id
    return u


@app.get("/logout")
def logout(request: Request):
    request.session.pop("user_id", None)
    request.session.pop("driver_id", None)
    return OK


@app.get("/me", response_model=schemas.User)
def me(user: models.User = Depends(require_login)):
    return user


@app.post("/drivers/authenticate", response_model=schemas.Driver)
def drivers_authenticate(request: Request, body: schemas.DriverLogin, db: Session = Depends(get_db)):
    driver = crud.authenticate_driver(db, body.cpf, body.password)
    if not driver:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="CPF ou senha inválidos")
    request.session["driver_id"] = driver.id
    logger.info("Driver %s signed in to the companion app", driver.id)
    return driver


# Everything below needs a logged-in session
api = APIRouter(dependencies=[Depends(require_login)])


# ---------------- Vehicles ----------------

@api.get("/vehicles", response_model=List[schemas.Vehicle])
def vehicles_list(store: FleetStore = Depends(fleet_store)):
    return [crud.vehicle_out(v) for v in store.vehicles]


@api.post("/vehicles", response_model=schemas.Vehicle, status_code=status.HTTP_201_CREATED)
def vehicles_create(body: schemas.VehicleCreate, store: FleetStore = Depends(fleet_store)):
    return crud.vehicle_out(store.add_vehicle(body))


@api.get("/vehicles/{vehicle_id}", response_model=schemas.Vehicle)
def vehicles_get(vehicle_id: str, db: Session = Depends(get_db)):
    return crud.vehicle_out(crud.get_or_404(db, models.Vehicle, vehicle_id, "Vehicle"))


@api.patch("/vehicles/{vehicle_id}", response_model=schemas.Vehicle)
def vehicles_edit(vehicle_id: str, body: schemas.VehicleUpdate, store: FleetStore = Depends(fleet_store)):
    return crud.vehicle_out(store.update_vehicle(vehicle_id, body))


@api.post("/vehicles/{vehicle_id}/maintenance", response_model=schemas.Vehicle)
def vehicles_oil_change(vehicle_id: str, body: schemas.OilChange, db: Session = Depends(get_db)):
    return crud.vehicle_out(crud.register_oil_change(db, vehicle_id, body))


@api.delete("/vehicles/{vehicle_id}")
def vehicles_delete(vehicle_id: str, store: FleetStore = Depends(fleet_store)):
    store.delete_vehicle(vehicle_id)
    return OK


# ---------------- Drivers ----------------

@api.get("/drivers", response_model=List[schemas.Driver])
def drivers_list(store: FleetStore = Depends(fleet_store)):
    return store.drivers


@api.post("/drivers", response_model=schemas.Driver, status_code=status.HTTP_201_CREATED)
def drivers_create(body: schemas.DriverCreate, store: FleetStore = Depends(fleet_store)):
    return store.add_driver(body)


@api.patch("/drivers/{driver_id}", response_model=schemas.Driver)
def drivers_edit(driver_id: str, body: schemas.DriverUpdate, store: FleetStore = Depends(fleet_store)):
    return store.update_driver(driver_id, body)


@api.delete("/drivers/{driver_id}")
def drivers_delete(driver_id: str, store: FleetStore = Depends(fleet_store)):
    store.delete_driver(driver_id)
    return OK


# ---------------- Checklists ----------------

@api.get("/checklists", response_model=List[schemas.ChecklistWithStatus])
def checklists_list(
    vehicle_id: Optional[str] = Query(None, alias="vehicleId"),
    store: FleetStore = Depends(fleet_store),
):
    rows = [c for c in store.checklists if not vehicle_id or c.vehicle_id == vehicle_id]
    return [_checklist_out(c, store) for c in rows]


@api.post("/checklists", response_model=schemas.ChecklistWithStatus, status_code=status.HTTP_201_CREATED)
def checklists_create(body: schemas.ChecklistCreate, store: FleetStore = Depends(fleet_store)):
    return _checklist_out(store.add_checklist(body), store)


@api.get("/checklists/{checklist_id}", response_model=schemas.ChecklistWithStatus)
def checklists_get(checklist_id: str, db: Session = Depends(get_db)):
    return crud.checklist_with_status(db, checklist_id)


@api.delete("/checklists/{checklist_id}")
def checklists_delete(checklist_id: str, store: FleetStore = Depends(fleet_store)):
    store.delete_checklist(checklist_id)
    return OK


@api.get("/checklists/{checklist_id}/actions", response_model=List[schemas.CorrectiveAction])
def actions_list(checklist_id: str, db: Session = Depends(get_db)):
    crud.get_or_404(db, models.Checklist, checklist_id, "Checklist")
    return crud.get_corrective_actions(db, checklist_id)


@api.post(
    "/checklists/{checklist_id}/actions",
    response_model=schemas.CorrectiveAction,
    status_code=status.HTTP_201_CREATED,
)
def actions_create(checklist_id: str, body: schemas.CorrectiveActionCreate, store: FleetStore = Depends(fleet_store)):
    return store.add_corrective_action(checklist_id, body)


@api.post("/corrective-actions/{action_id}/verify", response_model=schemas.CorrectiveAction)
def actions_verify(action_id: str, body: schemas.CorrectiveActionVerify, store: FleetStore = Depends(fleet_store)):
    return store.verify_corrective_action(action_id, body)


# ---------------- Checklist definitions ----------------

@api.get("/checklist-definitions", response_model=List[schemas.ChecklistDefinition])
def definitions_list(active_only: bool = Query(False, alias="activeOnly"), db: Session = Depends(get_db)):
    return crud.get_checklist_definitions(db, active_only)


@api.post("/checklist-definitions", response_model=schemas.ChecklistDefinition, status_code=status.HTTP_201_CREATED)
def definitions_create(
    body: schemas.ChecklistDefinitionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_login),
):
    return crud.create_row(db, models.ChecklistDefinition, body.model_dump(), str(user.id))


@api.post("/checklist-definitions/{definition_id}/toggle", response_model=schemas.ChecklistDefinition)
def definitions_toggle(definition_id: str, db: Session = Depends(get_db)):
    return crud.toggle_checklist_definition(db, definition_id)


@api.delete("/checklist-definitions/{definition_id}")
def definitions_delete(definition_id: str, db: Session = Depends(get_db)):
    crud.delete_row(db, models.ChecklistDefinition, definition_id)
    return OK


# ---------------- Maintenance tasks ----------------

@api.get("/maintenance-tasks", response_model=List[schemas.MaintenanceTask])
def tasks_list(task_status: Optional[models.TaskStatus] = Query(None, alias="status"), db: Session = Depends(get_db)):
    return crud.get_maintenance_tasks(db, task_status.value if task_status else None)


@api.post("/maintenance-tasks", response_model=schemas.MaintenanceTask, status_code=status.HTTP_201_CREATED)
def tasks_create(body: schemas.MaintenanceTaskCreate, store: FleetStore = Depends(fleet_store)):
    return store.add_maintenance_task(body)


@api.patch("/maintenance-tasks/{task_id}", response_model=schemas.MaintenanceTask)
def tasks_edit(task_id: str, body: schemas.MaintenanceTaskUpdate, store: FleetStore = Depends(fleet_store)):
    return store.update_maintenance_task(task_id, body)


@api.post("/maintenance-tasks/{task_id}/complete", response_model=schemas.MaintenanceTask)
def tasks_complete(task_id: str, body: schemas.MaintenanceTaskComplete, store: FleetStore = Depends(fleet_store)):
    return store.complete_maintenance_task(task_id, body)


@api.delete("/maintenance-tasks/{task_id}")
def tasks_delete(task_id: str, store: FleetStore = Depends(fleet_store)):
    store.delete_maintenance_task(task_id)
    return OK


# ---------------- Alerts ----------------

@api.get("/alerts")
def alerts_overview(store: FleetStore = Depends(fleet_store)) -> Dict[str, Any]:
    merged = store.current_alerts()
    return jsonable_encoder({
        "alerts": merged,
        "summary": alerts.fleet_summary(store.vehicles, merged),
        "licenses": store.driver_licenses(date.today()),
    })


# ---------------- Accounts / Suppliers / Customers ----------------

@api.get("/accounts", response_model=List[schemas.FinancialAccountWithBalance])
def accounts_list(store: FinancialStore = Depends(financial_store)):
    balances = store.account_balances()
    return [
        schemas.FinancialAccountWithBalance(
            **schemas.FinancialAccount.model_validate(a).model_dump(),
            balance=balances[a.id],
        )
        for a in store.accounts
    ]


@api.post("/accounts", response_model=schemas.FinancialAccount, status_code=status.HTTP_201_CREATED)
def accounts_create(body: schemas.FinancialAccountCreate, store: FinancialStore = Depends(financial_store)):
    return store.add_account(body)


@api.patch("/accounts/{account_id}", response_model=schemas.FinancialAccount)
def accounts_edit(account_id: str, body: schemas.FinancialAccountUpdate, store: FinancialStore = Depends(financial_store)):
    return store.update_account(account_id, body)


@api.delete("/accounts/{account_id}")
def accounts_delete(account_id: str, store: FinancialStore = Depends(financial_store)):
    store.delete_account(account_id)
    return OK


@api.get("/suppliers", response_model=List[schemas.Supplier])
def suppliers_list(store: FinancialStore = Depends(financial_store)):
    return store.suppliers


@api.post("/suppliers", response_model=schemas.Supplier, status_code=status.HTTP_201_CREATED)
def suppliers_create(body: schemas.SupplierCreate, store: FinancialStore = Depends(financial_store)):
    return store.add_supplier(body)


@api.patch("/suppliers/{supplier_id}", response_model=schemas.Supplier)
def suppliers_edit(supplier_id: str, body: schemas.SupplierUpdate, store: FinancialStore = Depends(financial_store)):
    return store.update_supplier(supplier_id, body)


@api.delete("/suppliers/{supplier_id}")
def suppliers_delete(supplier_id: str, store: FinancialStore = Depends(financial_store)):
    store.delete_supplier(supplier_id)
    return OK


@api.get("/customers", response_model=List[schemas.Customer])
def customers_list(store: FinancialStore = Depends(financial_store)):
    return store.customers


@api.post("/customers", response_model=schemas.Customer, status_code=status.HTTP_201_CREATED)
def customers_create(body: schemas.CustomerCreate, store: FinancialStore = Depends(financial_store)):
    return store.add_customer(body)


@api.patch("/customers/{customer_id}", response_model=schemas.Customer)
def customers_edit(customer_id: str, body: schemas.CustomerUpdate, store: FinancialStore = Depends(financial_store)):
    return store.update_customer(customer_id, body)


@api.delete("/customers/{customer_id}")
def customers_delete(customer_id: str, store: FinancialStore = Depends(financial_store)):
    store.delete_customer(customer_id)
    return OK


# ---------------- Transactions ----------------

@api.get("/transactions")
def transactions_list(
    month: Optional[str] = Query(None, description="YYYY-MM, matched on the due date"),
    tx_type: Optional[models.TransactionType] = Query(None, alias="type"),
    tx_status: Optional[models.TransactionStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    rows = crud.get_transactions(
        db,
        month=month,
        type=tx_type.value if tx_type else None,
        status=tx_status.value if tx_status else None,
        search=search,
    )
    return jsonable_encoder({
        "items": [schemas.Transaction.model_validate(t) for t in rows],
        "totals": reports.listing_totals(rows),
    })


@api.post("/transactions", response_model=schemas.Transaction, status_code=status.HTTP_201_CREATED)
def transactions_create(body: schemas.TransactionCreate, store: FinancialStore = Depends(financial_store)):
    return store.add_transaction(body)


@api.post("/transactions/installments", response_model=List[schemas.Transaction], status_code=status.HTTP_201_CREATED)
def transactions_installments(body: schemas.InstallmentsCreate, store: FinancialStore = Depends(financial_store)):
    return store.add_installments(body)


@api.post("/transactions/with-commission", response_model=List[schemas.Transaction], status_code=status.HTTP_201_CREATED)
def transactions_with_commission(body: schemas.TransactionCreate, store: FinancialStore = Depends(financial_store)):
    return store.add_income_with_commission(body)


@api.post("/transactions/bulk-delete")
def transactions_bulk_delete(body: schemas.BulkDelete, store: FinancialStore = Depends(financial_store)):
    return {"deleted": store.delete_transactions(body.ids)}


@api.patch("/transactions/{tx_id}", response_model=schemas.Transaction)
def transactions_edit(tx_id: str, body: schemas.TransactionUpdate, store: FinancialStore = Depends(financial_store)):
    return store.update_transaction(tx_id, body)


@api.post("/transactions/{tx_id}/pay", response_model=schemas.Transaction)
def transactions_pay(tx_id: str, body: schemas.TransactionPay, store: FinancialStore = Depends(financial_store)):
    return store.pay_transaction(tx_id, body)


@api.delete("/transactions/{tx_id}")
def transactions_delete(tx_id: str, store: FinancialStore = Depends(financial_store)):
    store.delete_transaction(tx_id)
    return OK


# ---------------- Fuel ----------------

@api.get("/fuel-entries", response_model=List[schemas.FuelEntry])
def fuel_list(vehicle_id: Optional[str] = Query(None, alias="vehicleId"), db: Session = Depends(get_db)):
    return crud.get_fuel_entries(db, vehicle_id)


@api.post("/fuel-entries", response_model=schemas.FuelEntry, status_code=status.HTTP_201_CREATED)
def fuel_create(body: schemas.FuelEntryCreate, store: FinancialStore = Depends(financial_store)):
    return store.add_fuel_entry(body)


@api.patch("/fuel-entries/{entry_id}", response_model=schemas.FuelEntry)
def fuel_edit(entry_id: str, body: schemas.FuelEntryUpdate, store: FinancialStore = Depends(financial_store)):
    return store.update_fuel_entry(entry_id, body)


@api.delete("/fuel-entries/{entry_id}")
def fuel_delete(entry_id: str, store: FinancialStore = Depends(financial_store)):
    store.delete_fuel_entry(entry_id)
    return OK


# ---------------- Trips ----------------

@api.get("/trips", response_model=List[schemas.Trip])
def trips_list(trip_status: Optional[models.TripStatus] = Query(None, alias="status"), db: Session = Depends(get_db)):
    return crud.get_trips(db, trip_status.value if trip_status else None)


@api.post("/trips", response_model=schemas.Trip, status_code=status.HTTP_201_CREATED)
def trips_start(body: schemas.TripStart, store: FinancialStore = Depends(financial_store)):
    return store.start_trip(body)


@api.get("/trips/{trip_id}", response_model=schemas.Trip)
def trips_get(trip_id: str, db: Session = Depends(get_db)):
    return crud.get_or_404(db, models.Trip, trip_id, "Trip")


@api.patch("/trips/{trip_id}", response_model=schemas.Trip)
def trips_edit(trip_id: str, body: schemas.TripUpdate, store: FinancialStore = Depends(financial_store)):
    return store.update_trip(trip_id, body)


@api.post("/trips/{trip_id}/complete", response_model=schemas.TripCompletion)
def trips_complete(trip_id: str, body: schemas.TripComplete, store: FinancialStore = Depends(financial_store)):
    return store.complete_trip(trip_id, body)


@api.delete("/trips/{trip_id}")
def trips_delete(trip_id: str, store: FinancialStore = Depends(financial_store)):
    store.delete_trip(trip_id)
    return OK


# ---------------- Reports ----------------

@api.get("/reports/dashboard")
def reports_dashboard(
    finance: FinancialStore = Depends(financial_store),
    fleet: FleetStore = Depends(fleet_store),
) -> Dict[str, Any]:
    today = date.today()
    month = reports.month_key(today)
    return jsonable_encoder({
        "company": settings.company_name,
        "cash": finance.cash_summary(),
        "expensesByCategory": reports.expenses_by_category(finance.transactions),
        "vehicleProfit": reports.vehicle_profit(fleet.vehicles, finance.transactions),
        "monthlyTrend": reports.monthly_trend(finance.transactions, today),
        "fuel": reports.month_fuel_summary(finance.fuel_entries, month),
        "expenseStatus": reports.expense_status_split(finance.transactions),
        "fleet": fleet.summary(),
        "dueToday": alerts.due_today(finance.transactions, today),
    })


@api.get("/reports/monthly")
def reports_monthly(month: Optional[str] = Query(None), store: FinancialStore = Depends(financial_store)) -> Dict[str, Any]:
    month = month or current_month()
    return jsonable_encoder({"company": settings.company_name, "report": store.profit_and_loss(month)})


@api.get("/reports/balance", response_model=reports.MonthBalance)
def reports_balance(month: Optional[str] = Query(None), store: FinancialStore = Depends(financial_store)):
    return store.month_balance(month or current_month())


@api.get("/reports/driver-statement/{driver_id}", response_model=reports.DriverStatement)
def reports_driver_statement(
    driver_id: str,
    month: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    store: FinancialStore = Depends(financial_store),
):
    crud.get_or_404(db, models.Driver, driver_id, "Driver")
    return store.driver_statement(driver_id, month or current_month())


@api.get("/reports/trips")
def reports_trips(store: FinancialStore = Depends(financial_store)) -> Dict[str, Any]:
    completed = store.completed_trips()
    return jsonable_encoder({"best": reports.best_trips(completed), "worst": reports.worst_trips(completed)})


@api.get("/reports/due-today", response_model=alerts.DueToday)
def reports_due_today(store: FinancialStore = Depends(financial_store)):
    return alerts.due_today(store.transactions, date.today())


# ---------------- Backup ----------------

@api.get("/backup/export")
def backup_export(db: Session = Depends(get_db)):
    filename = backup.backup_filename(date.today())
    return JSONResponse(
        content=backup.export_backup(db),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@api.post("/backup/import")
def backup_import(
    data: Dict[str, Any],
    db: Session = Depends(get_db),
    user: models.User = Depends(require_login),
) -> Dict[str, Any]:
    return {"restored": backup.import_backup(db, data, str(user.id))}


# ---------------- Driver companion app ----------------

driver_api = APIRouter(prefix="/driver-app", dependencies=[Depends(require_driver)])


@driver_api.get("/me", response_model=schemas.Driver)
def driver_me(driver: models.Driver = Depends(require_driver)):
    return driver


@driver_api.get("/vehicles", response_model=List[schemas.Vehicle])
def driver_vehicles(db: Session = Depends(get_db)):
    return [crud.vehicle_out(v) for v in crud.get_vehicles(db)]


@driver_api.get("/checklist-definitions", response_model=List[schemas.ChecklistDefinition])
def driver_definitions(
    checklist_type: models.ChecklistType = Query(..., alias="type"),
    vehicle_id: Optional[str] = Query(None, alias="vehicleId"),
    db: Session = Depends(get_db),
):
    vehicle = crud.get_or_404(db, models.Vehicle, vehicle_id, "Vehicle") if vehicle_id else None
    return crud.get_checklist_definitions(db, active_only=True, checklist_type=checklist_type.value, vehicle=vehicle)


@driver_api.post("/checklists", response_model=schemas.ChecklistWithStatus, status_code=status.HTTP_201_CREATED)
def driver_checklist_submit(
    body: schemas.ChecklistCreate,
    db: Session = Depends(get_db),
    driver: models.Driver = Depends(require_driver),
):
    checklist = crud.create_checklist(db, body, created_by=f"driver:{driver.id}", driver=driver)
    return crud.checklist_with_status(db, checklist.id)


app.include_router(api)
app.include_router(driver_api)

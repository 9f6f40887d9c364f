# frota/schemas.py
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from frota.models import (
    AccountType,
    ChecklistType,
    ItemStatus,
    PaymentMethod,
    SupplierCategory,
    TaskPriority,
    TaskStatus,
    TransactionStatus,
    TransactionType,
    TripStatus,
    VehicleScope,
)


class CamelModel(BaseModel):
    """Storage is snake_case, the wire format is camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


Money = Annotated[Decimal, Field(max_digits=12, decimal_places=2)]
# fields named "date" would shadow the type inside their own class body
DateType = date


# ---------- Vehicle ----------
class TruckBase(CamelModel):
    type: Literal["CAVALO"] = "CAVALO"
    plate: str
    model: str
    current_km: int = 0
    next_oil_change_km: int = 0
    default_driver_id: Optional[str] = None
    document_url: Optional[str] = None
    photos: List[str] = Field(default_factory=list)


class TrailerBase(CamelModel):
    type: Literal["CARRETA"] = "CARRETA"
    plate: str
    axles: int = 4
    last_lubrication_date: Optional[date] = None
    default_driver_id: Optional[str] = None
    document_url: Optional[str] = None
    photos: List[str] = Field(default_factory=list)


class TruckCreate(TruckBase):
    id: Optional[str] = None


class TrailerCreate(TrailerBase):
    id: Optional[str] = None


VehicleCreate = Annotated[Union[TruckCreate, TrailerCreate], Field(discriminator="type")]


class VehicleUpdate(CamelModel):
    plate: Optional[str] = None
    model: Optional[str] = None
    current_km: Optional[int] = None
    next_oil_change_km: Optional[int] = None
    axles: Optional[int] = None
    last_lubrication_date: Optional[date] = None
    default_driver_id: Optional[str] = None
    document_url: Optional[str] = None
    photos: Optional[List[str]] = None


class Truck(TruckBase):
    id: str


class Trailer(TrailerBase):
    id: str


Vehicle = Annotated[Union[Truck, Trailer], Field(discriminator="type")]


class OilChange(CamelModel):
    current_km: int
    next_oil_change_km: Optional[int] = None  # defaults to current_km + 30000


# ---------- Driver ----------
def clean_cpf(value: Optional[str]) -> Optional[str]:
    return re.sub(r"\D", "", value) if value else value


class DriverFields(CamelModel):
    @field_validator("cpf", check_fields=False)
    @classmethod
    def _digits_only(cls, v: Optional[str]) -> Optional[str]:
        return clean_cpf(v)

    @field_validator("cnh_category", check_fields=False)
    @classmethod
    def _upper(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class DriverBase(DriverFields):
    name: str
    cpf: Optional[str] = None
    cnh_number: Optional[str] = None
    cnh_category: Optional[str] = None
    cnh_expiration: Optional[date] = None


class DriverCreate(DriverBase):
    id: Optional[str] = None
    password: Optional[str] = None


class DriverUpdate(DriverFields):
    name: Optional[str] = None
    cpf: Optional[str] = None
    password: Optional[str] = None
    cnh_number: Optional[str] = None
    cnh_category: Optional[str] = None
    cnh_expiration: Optional[date] = None


class Driver(DriverBase):
    id: str


class DriverLogin(CamelModel):
    cpf: str
    password: str


# ---------- Checklist ----------
class ChecklistItem(CamelModel):
    id: str
    label: str
    status: ItemStatus = ItemStatus.OK
    comment: Optional[str] = None
    photo_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_shape(cls, data):
        # mobile app rows carry name/photo instead of label/photoUrl
        if isinstance(data, dict):
            data = dict(data)
            if "label" not in data and "name" in data:
                data["label"] = data.pop("name")
            if "photoUrl" not in data and "photo_url" not in data and "photo" in data:
                data["photoUrl"] = data.pop("photo")
        return data


class ChecklistCreate(CamelModel):
    id: Optional[str] = None
    vehicle_id: str
    date: Optional[datetime] = None
    items: List[ChecklistItem]
    type: ChecklistType = ChecklistType.MAINTENANCE


class Checklist(CamelModel):
    id: str
    vehicle_id: str
    date: datetime
    items: List[ChecklistItem]
    status: Optional[str] = None
    type: ChecklistType = ChecklistType.MAINTENANCE
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, v):
        return v or ChecklistType.MAINTENANCE


class CorrectiveActionCreate(CamelModel):
    item_id: str
    corrected_by: str = Field(min_length=1)
    action_taken: str = Field(min_length=1)
    photo_url: Optional[str] = None


class CorrectiveActionVerify(CamelModel):
    verified_by: str = Field(min_length=1)


class CorrectiveAction(CamelModel):
    id: str
    checklist_id: str
    item_id: str
    corrected_by: str
    action_taken: str
    verified: bool = False
    verified_by: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None


class ChecklistWithStatus(Checklist):
    derived_status: str
    actions: List[CorrectiveAction] = Field(default_factory=list)


class ChecklistDefinitionCreate(CamelModel):
    name: str = Field(min_length=1)
    type: ChecklistType = ChecklistType.MAINTENANCE
    category: str = Field(min_length=1)
    vehicle_scope: VehicleScope = VehicleScope.ALL


class ChecklistDefinition(ChecklistDefinitionCreate):
    id: str
    is_active: bool = True


# ---------- Maintenance tasks ----------
class MaintenanceTaskCreate(CamelModel):
    vehicle_id: str
    description: str = Field(min_length=1)
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None
    cost: Optional[Money] = None


class MaintenanceTaskUpdate(CamelModel):
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    cost: Optional[Money] = None


class MaintenanceTaskComplete(CamelModel):
    create_expense: bool = False
    account_id: Optional[str] = None
    supplier_id: Optional[str] = None


class MaintenanceTask(CamelModel):
    id: str
    vehicle_id: str
    description: str
    priority: TaskPriority
    status: TaskStatus
    due_date: Optional[date] = None
    cost: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None


# ---------- Financial accounts ----------
class FinancialAccountBase(CamelModel):
    name: str
    type: AccountType
    initial_balance: Money = Decimal("0")
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    agency: Optional[str] = None


class FinancialAccountCreate(FinancialAccountBase):
    pass


class FinancialAccountUpdate(CamelModel):
    name: Optional[str] = None
    type: Optional[AccountType] = None
    initial_balance: Optional[Money] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    agency: Optional[str] = None


class FinancialAccount(FinancialAccountBase):
    id: str


class FinancialAccountWithBalance(FinancialAccount):
    balance: Decimal


# ---------- Suppliers / Customers ----------
class CounterpartBase(CamelModel):
    trade_name: str
    legal_name: Optional[str] = None
    document: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


class SupplierCreate(CounterpartBase):
    category: SupplierCategory = SupplierCategory.GENERAL


class SupplierUpdate(CamelModel):
    trade_name: Optional[str] = None
    legal_name: Optional[str] = None
    document: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    category: Optional[SupplierCategory] = None


class Supplier(SupplierCreate):
    id: str


class CustomerCreate(CounterpartBase):
    pass


class CustomerUpdate(CamelModel):
    trade_name: Optional[str] = None
    legal_name: Optional[str] = None
    document: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


class Customer(CustomerCreate):
    id: str


# ---------- Transaction ----------
class TransactionBase(CamelModel):
    description: str = Field(min_length=1)
    amount: Money
    type: TransactionType
    status: TransactionStatus = TransactionStatus.PENDING
    due_date: date
    payment_date: Optional[date] = None
    category: str = "GENERAL"
    payment_method: Optional[PaymentMethod] = None
    account_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    supplier_id: Optional[str] = None
    customer_id: Optional[str] = None
    driver_id: Optional[str] = None
    trip_id: Optional[str] = None
    checklist_id: Optional[str] = None
    commission_value: Optional[Money] = None
    notes: Optional[str] = None


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(CamelModel):
    description: Optional[str] = None
    amount: Optional[Money] = None
    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    due_date: Optional[date] = None
    payment_date: Optional[date] = None
    category: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    account_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    supplier_id: Optional[str] = None
    customer_id: Optional[str] = None
    driver_id: Optional[str] = None
    notes: Optional[str] = None


class Transaction(TransactionBase):
    id: str
    created_by: Optional[str] = None


class InstallmentsCreate(TransactionCreate):
    installments: int = Field(ge=1, le=120)


class TransactionPay(CamelModel):
    payment_date: Optional[date] = None
    account_id: Optional[str] = None


class BulkDelete(CamelModel):
    ids: List[str]


# ---------- Fuel ----------
class FuelEntryBase(CamelModel):
    vehicle_id: str
    driver_id: Optional[str] = None
    supplier_id: Optional[str] = None
    date: DateType
    liters: Annotated[Decimal, Field(gt=0)]
    price_per_liter: Annotated[Decimal, Field(gt=0)]
    total_cost: Optional[Money] = None
    mileage: int
    full_tank: bool = True
    account_id: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


class FuelEntryCreate(FuelEntryBase):
    pass


class FuelEntryUpdate(CamelModel):
    vehicle_id: Optional[str] = None
    driver_id: Optional[str] = None
    supplier_id: Optional[str] = None
    date: Optional[DateType] = None
    liters: Optional[Decimal] = None
    price_per_liter: Optional[Decimal] = None
    total_cost: Optional[Money] = None
    mileage: Optional[int] = None
    full_tank: Optional[bool] = None
    account_id: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


class FuelEntry(FuelEntryBase):
    id: str
    total_cost: Decimal
    transaction_id: Optional[str] = None


# ---------- Trip ----------
class TripStart(CamelModel):
    vehicle_id: str
    driver_id: Optional[str] = None
    start_location: str = Field(min_length=1)
    start_km: int
    start_date: date
    notes: Optional[str] = None


class TripComplete(CamelModel):
    end_location: str = Field(min_length=1)
    end_km: int
    end_date: date
    freight_amount: Money = Decimal("0")
    extra_expenses_amount: Money = Decimal("0")
    fuel_amount: Money = Decimal("0")
    fuel_litres: Optional[Decimal] = None
    fuel_price: Optional[Decimal] = None
    with_commission: bool = False
    create_income: bool = False
    create_expense: bool = False
    customer_id: Optional[str] = None
    supplier_id: Optional[str] = None


class TripUpdate(CamelModel):
    # start fields are fixed once the trip exists
    driver_id: Optional[str] = None
    notes: Optional[str] = None
    end_location: Optional[str] = None
    end_km: Optional[int] = None
    end_date: Optional[date] = None
    freight_amount: Optional[Money] = None
    extra_expenses_amount: Optional[Money] = None
    fuel_amount: Optional[Money] = None
    fuel_litres: Optional[Decimal] = None
    fuel_price: Optional[Decimal] = None
    with_commission: Optional[bool] = None


class Trip(CamelModel):
    id: str
    vehicle_id: str
    driver_id: Optional[str] = None
    start_location: str
    end_location: Optional[str] = None
    start_km: int
    end_km: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    freight_amount: Decimal
    extra_expenses_amount: Decimal
    fuel_amount: Decimal
    fuel_litres: Optional[Decimal] = None
    fuel_price: Optional[Decimal] = None
    commission_amount: Decimal
    status: TripStatus
    notes: Optional[str] = None
    created_by: Optional[str] = None


class TripCompletion(CamelModel):
    trip: Trip
    transactions: List[Transaction]


# ---------- User ----------
class User(CamelModel):
    id: int
    username: str
    is_admin: bool = False

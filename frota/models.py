# frota/models.py
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from frota.db import Base


def new_id() -> str:
    return str(uuid.uuid4())


# ---------- Enums (stored as plain strings) ----------

class VehicleType(str, enum.Enum):
    TRUCK = "CAVALO"
    TRAILER = "CARRETA"


class ItemStatus(str, enum.Enum):
    OK = "OK"
    PROBLEM = "PROBLEM"


class ChecklistType(str, enum.Enum):
    MAINTENANCE = "MAINTENANCE"
    LOADING = "LOADING"


class AccountType(str, enum.Enum):
    BANK = "BANK"
    CASH = "CASH"
    WALLET = "WALLET"
    CREDIT_CARD = "CREDIT_CARD"


class SupplierCategory(str, enum.Enum):
    FUEL = "FUEL"
    MAINTENANCE = "MAINTENANCE"
    PARTS = "PARTS"
    SERVICE = "SERVICE"
    INSURANCE = "INSURANCE"
    GENERAL = "GENERAL"


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    PIX = "PIX"
    BOLETO = "BOLETO"
    CARD = "CARD"
    CASH = "CASH"
    TRANSFER = "TRANSFER"


class TripStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TaskPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    DONE = "DONE"


class VehicleScope(str, enum.Enum):
    ALL = "ALL"
    TRUCK = "TRUCK"
    TRAILER = "TRAILER"


# ---------- Fleet ----------

class Vehicle(Base):
    __tablename__ = "vehicles"
    id = Column(String(36), primary_key=True, default=new_id)
    type = Column(String(16), nullable=False)  # CAVALO | CARRETA
    plate = Column(String(16), nullable=False)
    # truck
    model = Column(String(100))
    current_km = Column(Integer)
    next_oil_change_km = Column(Integer)
    # trailer
    axles = Column(Integer)
    last_lubrication_date = Column(Date)

    default_driver_id = Column(String(36))  # no FK: drivers are restored after vehicles
    document_url = Column(Text)
    photos = Column(JSON, default=list)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)

    checklists = relationship("Checklist", back_populates="vehicle")


class Driver(Base):
    __tablename__ = "drivers"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    cpf = Column(String(14))
    password_hash = Column(String(200))
    cnh_number = Column(String(20))
    cnh_category = Column(String(5))
    cnh_expiration = Column(Date)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


class Checklist(Base):
    __tablename__ = "checklists"
    id = Column(String(36), primary_key=True, default=new_id)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False)
    date = Column(DateTime, nullable=False, default=datetime.utcnow)
    items = Column(JSON, nullable=False, default=list)
    status = Column(String(16), default="COMPLETED")
    type = Column(String(16), default=ChecklistType.MAINTENANCE.value)
    # filled when a driver submits it from the companion app
    driver_id = Column(String(36))
    driver_name = Column(String(200))
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)

    vehicle = relationship("Vehicle", back_populates="checklists")
    actions = relationship("CorrectiveAction", back_populates="checklist")


class CorrectiveAction(Base):
    __tablename__ = "corrective_actions"
    id = Column(String(36), primary_key=True, default=new_id)
    checklist_id = Column(String(36), ForeignKey("checklists.id"), nullable=False)
    item_id = Column(String(100), nullable=False)
    corrected_by = Column(String(200), nullable=False)
    action_taken = Column(Text, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    verified_by = Column(String(200))
    photo_url = Column(Text)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)
    verified_at = Column(DateTime)

    checklist = relationship("Checklist", back_populates="actions")


class ChecklistDefinition(Base):
    __tablename__ = "checklist_definitions"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    type = Column(String(16), nullable=False, default=ChecklistType.MAINTENANCE.value)
    category = Column(String(100))
    vehicle_scope = Column(String(16), default=VehicleScope.ALL.value)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


class MaintenanceTask(Base):
    __tablename__ = "maintenance_alerts"
    id = Column(String(36), primary_key=True, default=new_id)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False)
    description = Column(Text, nullable=False)
    priority = Column(String(8), nullable=False, default=TaskPriority.MEDIUM.value)
    status = Column(String(8), nullable=False, default=TaskStatus.PENDING.value)
    due_date = Column(Date)
    cost = Column(Numeric(12, 2))
    transaction_id = Column(String(36))
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


# ---------- Finance ----------

class FinancialAccount(Base):
    __tablename__ = "financial_accounts"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    type = Column(String(16), nullable=False)
    initial_balance = Column(Numeric(12, 2), nullable=False, default=0)
    bank_name = Column(String(100))
    account_number = Column(String(50))
    agency = Column(String(20))
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


class Supplier(Base):
    __tablename__ = "suppliers"
    id = Column(String(36), primary_key=True, default=new_id)
    trade_name = Column(String(200), nullable=False)
    legal_name = Column(String(200))
    document = Column(String(20))
    phone = Column(String(30))
    email = Column(String(200))
    address = Column(Text)
    category = Column(String(16), nullable=False, default=SupplierCategory.GENERAL.value)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


class Customer(Base):
    __tablename__ = "customers"
    id = Column(String(36), primary_key=True, default=new_id)
    trade_name = Column(String(200), nullable=False)
    legal_name = Column(String(200))
    document = Column(String(20))
    phone = Column(String(30))
    email = Column(String(200))
    address = Column(Text)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(String(36), primary_key=True, default=new_id)
    description = Column(String(500), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(String(8), nullable=False)
    status = Column(String(10), nullable=False, default=TransactionStatus.PENDING.value)
    due_date = Column(Date, nullable=False)
    payment_date = Column(Date)
    category = Column(String(50), nullable=False, default="GENERAL")
    payment_method = Column(String(10))
    account_id = Column(String(36), ForeignKey("financial_accounts.id"))
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"))
    supplier_id = Column(String(36), ForeignKey("suppliers.id"))
    customer_id = Column(String(36), ForeignKey("customers.id"))
    driver_id = Column(String(36), ForeignKey("drivers.id"))
    trip_id = Column(String(36))  # no FK: trips are restored after transactions
    checklist_id = Column(String(36), ForeignKey("checklists.id"))
    commission_value = Column(Numeric(12, 2))
    notes = Column(Text)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


class Trip(Base):
    __tablename__ = "trips"
    id = Column(String(36), primary_key=True, default=new_id)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"))
    start_location = Column(String(200), nullable=False)
    end_location = Column(String(200))
    start_km = Column(Integer, nullable=False)
    end_km = Column(Integer)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    freight_amount = Column(Numeric(12, 2), nullable=False, default=0)
    extra_expenses_amount = Column(Numeric(12, 2), nullable=False, default=0)
    fuel_amount = Column(Numeric(12, 2), nullable=False, default=0)
    fuel_litres = Column(Numeric(10, 2))
    fuel_price = Column(Numeric(10, 3))
    commission_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(12), nullable=False, default=TripStatus.IN_PROGRESS.value)
    notes = Column(Text)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


class FuelEntry(Base):
    __tablename__ = "fuel_entries"
    id = Column(String(36), primary_key=True, default=new_id)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"))
    supplier_id = Column(String(36), ForeignKey("suppliers.id"))
    transaction_id = Column(String(36), ForeignKey("transactions.id"))
    account_id = Column(String(36), ForeignKey("financial_accounts.id"))
    date = Column(Date, nullable=False)
    liters = Column(Numeric(10, 2), nullable=False)
    price_per_liter = Column(Numeric(10, 3), nullable=False)
    total_cost = Column(Numeric(12, 2), nullable=False)
    mileage = Column(Integer, nullable=False)
    full_tank = Column(Boolean, default=True, nullable=False)
    payment_method = Column(String(10))
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


# ---------- Session identity ----------

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(200), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    is_admin = Column(Boolean, default=False)

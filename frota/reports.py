# frota/reports.py
"""
Derived financial figures.

Every function here is pure: it takes the flat collections held by a store
(ORM rows or schema objects, both expose the same snake_case attributes) and
returns a fresh result. Sums are done in integer cents.

Two date bases are in play and are kept apart on purpose:
- cash basis: only PAID transactions, placed by ``payment_date``;
- due-date basis: any transaction, placed by ``due_date``.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from frota.models import TransactionStatus, TransactionType
from frota.money import from_cents, percent_of, to_cents
from frota.schemas import CamelModel, Transaction

VARIABLE_COST_CATEGORIES = {"FUEL", "COMMISSION"}
COMMISSION_KEYWORD = "comissão"


# ---------------- Result types ----------------

class CashSummary(CamelModel):
    current_balance: Decimal
    pending_payables: Decimal
    pending_payables_count: int
    pending_receivables: Decimal
    pending_receivables_count: int


class CategoryTotal(CamelModel):
    category: str
    total: Decimal


class VehicleProfit(CamelModel):
    vehicle_id: str
    plate: str
    income: Decimal
    expense: Decimal
    profit: Decimal


class MonthTotals(CamelModel):
    month: str
    income: Decimal
    expense: Decimal
    profit: Decimal


class MonthBalance(CamelModel):
    month: str
    opening_balance: Decimal
    month_income: Decimal
    month_expense: Decimal
    month_net: Decimal
    closing_balance: Decimal


class DriverStatement(CamelModel):
    driver_id: str
    month: str
    total_pending_debt: Decimal
    month_paid: Decimal
    history: List[Transaction]


class ProfitAndLoss(CamelModel):
    month: str
    revenue: Decimal
    variable_costs: Decimal
    fuel_costs: Decimal
    commission_costs: Decimal
    contribution_margin: Decimal
    fixed_costs: Decimal
    fixed_costs_by_category: List[CategoryTotal]
    result: Decimal
    variable_costs_pct: Decimal
    contribution_margin_pct: Decimal
    fixed_costs_pct: Decimal
    result_pct: Decimal
    variable_cost_ids: List[str]
    fixed_cost_ids: List[str]


class TripProfit(CamelModel):
    trip_id: str
    vehicle_id: str
    start_location: str
    end_location: Optional[str] = None
    freight_amount: Decimal
    profit: Decimal


class FuelSummary(CamelModel):
    month: str
    cost: Decimal
    liters: Decimal


class ExpenseSplit(CamelModel):
    paid: Decimal
    pending: Decimal


# ---------------- Helpers ----------------

def parse_month(month: str) -> Tuple[int, int]:
    """'YYYY-MM' -> (year, month); raises ValueError on anything else."""
    try:
        year_s, month_s = month.split("-")
        year, mon = int(year_s), int(month_s)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid month {month!r}, expected YYYY-MM")
    if len(year_s) != 4 or len(month_s) != 2 or not 1 <= mon <= 12:
        raise ValueError(f"Invalid month {month!r}, expected YYYY-MM")
    return year, mon


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def first_of_month(month: str) -> date:
    year, mon = parse_month(month)
    return date(year, mon, 1)


def shift_month(month: str, delta: int) -> str:
    year, mon = parse_month(month)
    index = year * 12 + (mon - 1) + delta
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def in_month(value, month: str) -> bool:
    # prefix match on the ISO form; works for date objects and ISO strings alike
    return value is not None and str(value)[:7] == month


def _as_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def signed_cents(t) -> int:
    cents = to_cents(t.amount)
    return cents if t.type == TransactionType.INCOME else -cents


def _is_paid(t) -> bool:
    return t.status == TransactionStatus.PAID


def _sum(transactions: Iterable) -> int:
    return sum(to_cents(t.amount) for t in transactions)


def _initial_cents(accounts: Iterable) -> int:
    return sum(to_cents(a.initial_balance) for a in accounts)


# ---------------- Balances ----------------

def current_balance(accounts: Iterable, transactions: Iterable) -> Decimal:
    paid_flow = sum(signed_cents(t) for t in transactions if _is_paid(t))
    return from_cents(_initial_cents(accounts) + paid_flow)


def pending_payables(transactions: Iterable) -> Decimal:
    return from_cents(_sum(
        t for t in transactions
        if t.type == TransactionType.EXPENSE and t.status == TransactionStatus.PENDING
    ))


def pending_receivables(transactions: Iterable) -> Decimal:
    return from_cents(_sum(
        t for t in transactions
        if t.type == TransactionType.INCOME and t.status == TransactionStatus.PENDING
    ))


def cash_summary(accounts: List, transactions: List) -> CashSummary:
    return CashSummary(
        current_balance=current_balance(accounts, transactions),
        pending_payables=pending_payables(transactions),
        pending_payables_count=sum(
            1 for t in transactions
            if t.type == TransactionType.EXPENSE and t.status == TransactionStatus.PENDING
        ),
        pending_receivables=pending_receivables(transactions),
        pending_receivables_count=sum(
            1 for t in transactions
            if t.type == TransactionType.INCOME and t.status == TransactionStatus.PENDING
        ),
    )


def account_balance(account, transactions: Iterable) -> Decimal:
    flow = sum(
        signed_cents(t) for t in transactions
        if _is_paid(t) and t.account_id == account.id
    )
    return from_cents(to_cents(account.initial_balance) + flow)


def account_balances(accounts: Iterable, transactions: List) -> Dict[str, Decimal]:
    return {a.id: account_balance(a, transactions) for a in accounts}


# ---------------- Breakdowns ----------------

def expenses_by_category(transactions: Iterable, month: Optional[str] = None) -> List[CategoryTotal]:
    totals: Dict[str, int] = defaultdict(int)
    for t in transactions:
        if t.type != TransactionType.EXPENSE:
            continue
        if month is not None and not in_month(t.due_date, month):
            continue
        totals[t.category or "GENERAL"] += to_cents(t.amount)
    ordered = sorted(totals.items(), key=lambda kv: -kv[1])
    return [CategoryTotal(category=cat, total=from_cents(cents)) for cat, cents in ordered]


def vehicle_profit(vehicles: Iterable, transactions: List) -> List[VehicleProfit]:
    rows: List[VehicleProfit] = []
    for v in vehicles:
        income = _sum(t for t in transactions if t.vehicle_id == v.id and t.type == TransactionType.INCOME)
        expense = _sum(t for t in transactions if t.vehicle_id == v.id and t.type == TransactionType.EXPENSE)
        if income == 0 and expense == 0:
            continue
        rows.append(VehicleProfit(
            vehicle_id=v.id,
            plate=v.plate,
            income=from_cents(income),
            expense=from_cents(expense),
            profit=from_cents(income - expense),
        ))
    return rows


def month_totals(transactions: Iterable, month: str) -> MonthTotals:
    income = expense = 0
    for t in transactions:
        if not in_month(t.due_date, month):
            continue
        if t.type == TransactionType.INCOME:
            income += to_cents(t.amount)
        else:
            expense += to_cents(t.amount)
    return MonthTotals(
        month=month,
        income=from_cents(income),
        expense=from_cents(expense),
        profit=from_cents(income - expense),
    )


def monthly_trend(transactions: List, today: date, months: int = 6) -> List[MonthTotals]:
    """Trailing ``months`` calendar months ending with the current one, oldest first."""
    current = month_key(today)
    return [month_totals(transactions, shift_month(current, -offset)) for offset in range(months - 1, -1, -1)]


# ---------------- Month balance ----------------

def month_balance(accounts: Iterable, transactions: List, month: str) -> MonthBalance:
    """
    opening = initial balances + PAID flow with payment_date before the month
    closing = opening + (income - expense) of the month's transactions by due date

    The in-month delta counts pending as well as paid rows (projected), and
    leaves CANCELLED ones out.
    """
    start = first_of_month(month)
    past_flow = 0
    for t in transactions:
        paid_on = _as_date(t.payment_date)
        if _is_paid(t) and paid_on is not None and paid_on < start:
            past_flow += signed_cents(t)
    opening = _initial_cents(accounts) + past_flow

    income = expense = 0
    for t in transactions:
        if t.status == TransactionStatus.CANCELLED or not in_month(t.due_date, month):
            continue
        if t.type == TransactionType.INCOME:
            income += to_cents(t.amount)
        else:
            expense += to_cents(t.amount)

    return MonthBalance(
        month=month,
        opening_balance=from_cents(opening),
        month_income=from_cents(income),
        month_expense=from_cents(expense),
        month_net=from_cents(income - expense),
        closing_balance=from_cents(opening + income - expense),
    )


# ---------------- Driver statement ----------------

def driver_statement(driver_id: str, transactions: Iterable, month: str) -> DriverStatement:
    parse_month(month)
    own = [t for t in transactions if t.driver_id == driver_id]
    pending_debt = _sum(
        t for t in own
        if t.type == TransactionType.EXPENSE and t.status == TransactionStatus.PENDING
    )
    history = sorted((t for t in own if in_month(t.due_date, month)), key=lambda t: str(t.due_date))
    month_paid = _sum(
        t for t in history
        if t.type == TransactionType.EXPENSE and t.status == TransactionStatus.PAID
    )
    return DriverStatement(
        driver_id=driver_id,
        month=month,
        total_pending_debt=from_cents(pending_debt),
        month_paid=from_cents(month_paid),
        history=[Transaction.model_validate(t) for t in history],
    )


# ---------------- DRE ----------------

def percent_of_revenue(value: Decimal, revenue: Decimal) -> Decimal:
    """Share of revenue in percent, one decimal place; 0 when there is no revenue."""
    return percent_of(to_cents(value), to_cents(revenue))


def is_commission(t) -> bool:
    # legacy commission rows were filed under other categories, hence the description check
    if t.category == "COMMISSION":
        return True
    return COMMISSION_KEYWORD in (t.description or "").lower()


def is_variable_cost(t) -> bool:
    return t.category in VARIABLE_COST_CATEGORIES or is_commission(t)


def profit_and_loss(transactions: Iterable, month: str) -> ProfitAndLoss:
    parse_month(month)
    month_txs = [t for t in transactions if in_month(t.due_date, month)]
    revenue = _sum(t for t in month_txs if t.type == TransactionType.INCOME)
    expenses = [t for t in month_txs if t.type == TransactionType.EXPENSE]
    variable = [t for t in expenses if is_variable_cost(t)]
    fixed = [t for t in expenses if not is_variable_cost(t)]

    variable_costs = _sum(variable)
    fuel_costs = _sum(t for t in variable if t.category == "FUEL")
    commission_costs = _sum(t for t in variable if t.category != "FUEL" and is_commission(t))
    fixed_costs = _sum(fixed)
    margin = revenue - variable_costs
    result = margin - fixed_costs

    return ProfitAndLoss(
        month=month,
        revenue=from_cents(revenue),
        variable_costs=from_cents(variable_costs),
        fuel_costs=from_cents(fuel_costs),
        commission_costs=from_cents(commission_costs),
        contribution_margin=from_cents(margin),
        fixed_costs=from_cents(fixed_costs),
        fixed_costs_by_category=expenses_by_category(fixed),
        result=from_cents(result),
        variable_costs_pct=percent_of(variable_costs, revenue),
        contribution_margin_pct=percent_of(margin, revenue),
        fixed_costs_pct=percent_of(fixed_costs, revenue),
        result_pct=percent_of(result, revenue),
        variable_cost_ids=[t.id for t in variable],
        fixed_cost_ids=[t.id for t in fixed],
    )


# ---------------- Trips ----------------

def trip_profit_cents(trip) -> int:
    costs = (
        to_cents(trip.extra_expenses_amount)
        + to_cents(trip.fuel_amount)
        + to_cents(trip.commission_amount)
    )
    return to_cents(trip.freight_amount) - costs


def trip_profit(trip) -> Decimal:
    return from_cents(trip_profit_cents(trip))


def _trip_row(trip) -> TripProfit:
    return TripProfit(
        trip_id=trip.id,
        vehicle_id=trip.vehicle_id,
        start_location=trip.start_location,
        end_location=trip.end_location,
        freight_amount=from_cents(to_cents(trip.freight_amount)),
        profit=trip_profit(trip),
    )


def best_trips(trips: Iterable, limit: int = 5) -> List[TripProfit]:
    ranked = sorted(trips, key=trip_profit_cents, reverse=True)
    return [_trip_row(t) for t in ranked[:limit]]


def worst_trips(trips: Iterable, limit: int = 5) -> List[TripProfit]:
    ranked = sorted(trips, key=trip_profit_cents)
    return [_trip_row(t) for t in ranked[:limit]]


# ---------------- Dashboard extras ----------------

def month_fuel_summary(fuel_entries: Iterable, month: str) -> FuelSummary:
    entries = [f for f in fuel_entries if in_month(f.date, month)]
    liters = sum((Decimal(str(f.liters)) for f in entries), Decimal("0"))
    return FuelSummary(
        month=month,
        cost=from_cents(sum(to_cents(f.total_cost) for f in entries)),
        liters=liters,
    )


def expense_status_split(transactions: Iterable) -> ExpenseSplit:
    expenses = [t for t in transactions if t.type == TransactionType.EXPENSE]
    return ExpenseSplit(
        paid=from_cents(_sum(t for t in expenses if t.status == TransactionStatus.PAID)),
        pending=from_cents(_sum(t for t in expenses if t.status == TransactionStatus.PENDING)),
    )


class ListingTotals(CamelModel):
    income: Decimal
    expense: Decimal
    net: Decimal


def listing_totals(transactions: Iterable) -> ListingTotals:
    """Totals shown under a filtered transaction list; CANCELLED rows are left out."""
    income = expense = 0
    for t in transactions:
        if t.status == TransactionStatus.CANCELLED:
            continue
        if t.type == TransactionType.INCOME:
            income += to_cents(t.amount)
        else:
            expense += to_cents(t.amount)
    return ListingTotals(income=from_cents(income), expense=from_cents(expense), net=from_cents(income - expense))

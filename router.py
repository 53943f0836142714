import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db, Budget, Category, Expense, User
from errors import NoBudgetConfigured
from evaluator import spend_snapshot
from notifier import check_and_notify
from periods import (
    calendar_month_bounds,
    date_bounds,
    local_date,
    local_midnight,
    now_utc,
    parse_local_date,
    to_storage,
)
from schemas import (
    ActivityStats,
    BudgetCreate,
    BudgetResponse,
    BudgetUpdate,
    CategoryResponse,
    DailyLimitSummary,
    ExpenseCreate,
    ExpenseResponse,
    MonthSummary,
    SpendingSummary,
    UserStats,
)
from stores import (
    CENT,
    activity_stats,
    as_amount,
    count_expenses,
    daily_active_users,
    expenses_in_range,
    get_active_budget,
    log_user_activity,
    sum_by_category,
    user_stats,
)
from streaks import celebration_message, crossed_milestone, get_streak, update_streak

logger = logging.getLogger(__name__)

router = APIRouter()

ALL_TIME_START = datetime(2020, 1, 1)
RECENT_DAYS = 7


def _parse_date(value: Optional[str]):
    try:
        return parse_local_date(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")


def _category_budgets_json(category_budgets) -> dict:
    return {name: str(amount) for name, amount in category_budgets.items()}


# Budget


@router.get("/budget", response_model=Optional[BudgetResponse])
async def get_budget(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return get_active_budget(db, current_user.email)


@router.post("/budget", response_model=BudgetResponse)
async def save_budget(
    budget: BudgetCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # One budget per user: saving again replaces it
    existing_budget = get_active_budget(db, current_user.email)

    if existing_budget:
        existing_budget.amount = budget.amount
        existing_budget.period_type = budget.period_type
        existing_budget.category_budgets = _category_budgets_json(budget.category_budgets)
        db_budget = existing_budget
    else:
        db_budget = Budget(
            user_email=current_user.email,
            amount=budget.amount,
            period_type=budget.period_type,
            category_budgets=_category_budgets_json(budget.category_budgets),
        )
        db.add(db_budget)

    db.commit()
    db.refresh(db_budget)
    log_user_activity(
        db,
        current_user.email,
        "budget_set",
        {"amount": str(budget.amount), "type": budget.period_type},
    )
    return db_budget


@router.put("/budget", response_model=BudgetResponse)
async def update_budget(
    updates: BudgetUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    db_budget = get_active_budget(db, current_user.email)
    if not db_budget:
        raise HTTPException(status_code=404, detail="Budget not found")

    changes = updates.model_dump(exclude_unset=True, exclude_none=True)
    if "amount" in changes:
        db_budget.amount = changes["amount"]
    if "period_type" in changes:
        db_budget.period_type = changes["period_type"]
    if "category_budgets" in changes:
        db_budget.category_budgets = _category_budgets_json(changes["category_budgets"])

    db.commit()
    db.refresh(db_budget)
    return db_budget


# Expenses


@router.post("/expenses", status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense_date = to_storage(expense.date) if expense.date else now_utc()

    db_expense = Expense(
        user_email=current_user.email,
        amount=expense.amount,
        category=expense.category,
        description=expense.description,
        method=expense.method,
        date=expense_date,
    )
    db.add(db_expense)
    db.commit()
    db.refresh(db_expense)

    log_user_activity(
        db,
        current_user.email,
        "expense_added",
        {"amount": str(expense.amount), "category": expense.category},
    )

    response = {"expense": ExpenseResponse.model_validate(db_expense), "alerts": []}

    # Streak and budget alerts are side effects; the expense is saved regardless
    try:
        old_streak = get_streak(db, current_user.email)["current_streak"]
        streak = update_streak(db, current_user.email)
        if crossed_milestone(old_streak, streak["current_streak"]):
            response["celebration"] = celebration_message(streak["current_streak"])
    except Exception:
        db.rollback()
        logger.exception("Streak update failed for %s", current_user.email)

    try:
        fired = check_and_notify(db, current_user.email)
        response["alerts"] = [record.message for record in fired]
    except Exception:
        db.rollback()
        logger.exception("Budget threshold check failed for %s", current_user.email)

    return response


@router.get("/expenses", response_model=List[ExpenseResponse])
async def get_expenses(
    date: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if date:
        start, end = date_bounds(_parse_date(date))
        return expenses_in_range(db, current_user.email, start, end, limit)

    start = local_midnight(local_date() - timedelta(days=RECENT_DAYS))
    return expenses_in_range(db, current_user.email, start, limit=limit or 10)


@router.get("/expenses/category/{category}", response_model=List[ExpenseResponse])
async def get_expenses_by_category(
    category: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return (
        db.query(Expense)
        .filter(Expense.user_email == current_user.email, Expense.category == category)
        .order_by(Expense.date)
        .all()
    )


@router.get("/expenses/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = (
        db.query(Expense)
        .filter(Expense.id == expense_id, Expense.user_email == current_user.email)
        .first()
    )
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


@router.delete("/expenses/{expense_id}")
async def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    if expense.user_email != current_user.email:
        raise HTTPException(status_code=403, detail="You can only delete your own expenses")

    activity = {
        "amount": str(expense.amount),
        "category": expense.category,
        "expense_id": expense_id,
    }
    db.delete(expense)
    db.commit()
    log_user_activity(db, current_user.email, "expense_deleted", activity)
    return {"message": "Expense deleted successfully"}


# Categories


@router.get("/categories", response_model=List[CategoryResponse])
async def get_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.id).all()


# Analytics


@router.get("/analytics/spending", response_model=SpendingSummary)
async def get_spending(
    period: Literal["day", "month", "all"] = "month",
    date: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    day = _parse_date(date)
    if period == "day":
        start, end = date_bounds(day)
    elif period == "all":
        start, end = ALL_TIME_START, now_utc() + timedelta(seconds=1)
    else:
        start, end = calendar_month_bounds(day.year, day.month)

    category_spending = sum_by_category(db, current_user.email, start, end)
    return SpendingSummary(
        period=period,
        start_date=start,
        end_date=end,
        total_spent=sum(category_spending.values(), Decimal("0.00")),
        category_spending=category_spending,
        expense_count=count_expenses(db, current_user.email, start, end),
    )


@router.get("/analytics/month-summary", response_model=MonthSummary)
async def get_month_summary(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    start, end = calendar_month_bounds(year, month)
    expenses = expenses_in_range(db, current_user.email, start, end)
    expense_dates = sorted({local_date(e.date) for e in expenses})
    return MonthSummary(year=year, month=month, expense_dates=expense_dates)


@router.get("/analytics/daily-limit", response_model=DailyLimitSummary)
async def get_daily_limit(
    date: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    day = _parse_date(date)
    try:
        snapshot = spend_snapshot(db, current_user.email, as_of=local_midnight(day))
    except NoBudgetConfigured:
        zero = Decimal("0.00")
        return DailyLimitSummary(
            date=day,
            daily_limit=zero,
            daily_spent=zero,
            remaining_today=zero,
            monthly_spent=zero,
            message="No budget set",
        )

    daily_limit = snapshot.daily_limit.quantize(CENT)
    return DailyLimitSummary(
        date=day,
        daily_limit=daily_limit,
        daily_spent=snapshot.day_spent,
        remaining_today=max(daily_limit - snapshot.day_spent, Decimal("0.00")),
        monthly_budget=as_amount(snapshot.budget_amount),
        monthly_spent=snapshot.month_spent,
    )


# Activity


@router.get("/activity/stats", response_model=ActivityStats)
async def get_activity_stats(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return activity_stats(db, current_user.email, days)


@router.get("/activity/daily-users")
async def get_daily_active_users(
    date: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    day = _parse_date(date)
    start, end = date_bounds(day)
    return {"date": day.isoformat(), "active_users": daily_active_users(db, start, end)}


# Admin


@router.get("/admin/stats", response_model=UserStats)
async def get_user_stats(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return user_stats(db)

from pydantic import BaseModel, EmailStr, Field, constr, condecimal
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

Amount = condecimal(gt=0, max_digits=10, decimal_places=2)


class UserCreate(BaseModel):
    email: EmailStr
    username: constr(min_length=3, max_length=50)
    password: constr(min_length=6)
    first_name: Optional[str] = None
    country: str = "India"


class UserLogin(BaseModel):
    login: str = Field(..., description="Email address or username")
    password: str


class UserResponse(BaseModel):
    email: str
    username: str
    first_name: Optional[str] = None
    country: Optional[str] = None

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ExpenseCreate(BaseModel):
    amount: Amount
    category: constr(min_length=1)
    description: Optional[str] = None
    method: Literal["manual", "voice", "import"] = "manual"
    date: Optional[datetime] = None


class ExpenseResponse(BaseModel):
    id: int
    user_email: str
    amount: Decimal
    category: str
    description: Optional[str] = None
    method: str
    date: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class BudgetCreate(BaseModel):
    amount: Amount
    period_type: Literal["monthly"] = "monthly"
    category_budgets: Dict[str, Amount] = {}


class BudgetUpdate(BaseModel):
    amount: Optional[Amount] = None
    period_type: Optional[Literal["monthly"]] = None
    category_budgets: Optional[Dict[str, Amount]] = None


class BudgetResponse(BaseModel):
    id: int
    user_email: str
    period_type: str
    amount: Decimal
    category_budgets: Dict[str, Decimal]
    updated_at: datetime

    class Config:
        from_attributes = True


class CategoryResponse(BaseModel):
    id: int
    name: str
    icon: str
    color: str
    is_default: bool

    class Config:
        from_attributes = True


class NotificationResponse(BaseModel):
    id: int
    budget_id: int
    kind: str
    fired_at: datetime
    message: str
    acknowledged: bool

    class Config:
        from_attributes = True


class NotificationSettingsIn(BaseModel):
    daily_reminders: bool = True
    budget_alerts: bool = True
    weekly_reports: bool = True
    reminder_time: constr(pattern=r"^([01]\d|2[0-3]):[0-5]\d$") = "19:00"


class NotificationSettingsOut(NotificationSettingsIn):
    user_email: str
    push_enabled: bool = False


class PushSubscription(BaseModel):
    subscription: dict


class NotificationCheck(BaseModel):
    type: Optional[Literal["daily_reminder", "budget_alert", "test"]] = None


class NotificationLogResponse(BaseModel):
    id: int
    notification_type: str
    title: str
    message: str
    status: str
    sent_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SpendingSummary(BaseModel):
    period: str
    start_date: datetime
    end_date: datetime
    total_spent: Decimal
    category_spending: Dict[str, Decimal]
    expense_count: int


class MonthSummary(BaseModel):
    year: int
    month: int
    expense_dates: List[date]


class DailyLimitSummary(BaseModel):
    date: date
    daily_limit: Decimal
    daily_spent: Decimal
    remaining_today: Decimal
    monthly_budget: Optional[Decimal] = None
    monthly_spent: Decimal
    message: Optional[str] = None


class ActivityStats(BaseModel):
    total_logins: int
    total_expenses: int
    last_active: Optional[datetime] = None
    daily_usage: Dict[str, int]


class RecentSignup(BaseModel):
    email: str
    signup_date: date


class UserStats(BaseModel):
    total_users: int
    recent_signups: List[RecentSignup]
    signups_by_day: Dict[str, int]


class OnboardingIn(BaseModel):
    employment_status: Optional[
        Literal["student", "salaried", "freelancer", "homemaker", "unemployed"]
    ] = None
    monthly_income_range: Optional[
        Literal["under_10k", "10k_30k", "30k_60k", "60k_100k", "above_100k"]
    ] = None
    top_expense_categories: List[str] = []
    saving_goal: Optional[
        Literal["gadget", "education", "vacation", "house", "family", "investment"]
    ] = None
    money_personality: Optional[
        Literal["regular_saver", "impulsive_spender", "budget_tracker", "unsure"]
    ] = None
    age_group: Optional[Literal["under_18", "18_24", "25_34", "35_50", "50_plus"]] = None


class OnboardingResponse(OnboardingIn):
    user_email: str
    completed: bool
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_logged_date: Optional[date] = None
    total_days_logged: int
    message: str
    emoji: str


class MissionResponse(BaseModel):
    id: str
    title: str
    description: str
    emoji: str
    type: str
    target_amount: Optional[int] = None
    date: date
    completed: bool
    progress: float
    completion_streak: int

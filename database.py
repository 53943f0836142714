from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Boolean,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import sessionmaker, declarative_base

from config import DATABASE_URL
from periods import now_utc

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

DEFAULT_CATEGORIES = [
    ("Food & Dining", "fas fa-utensils", "red"),
    ("Transport", "fas fa-car", "blue"),
    ("Groceries", "fas fa-shopping-cart", "green"),
    ("Entertainment", "fas fa-film", "purple"),
    ("Health", "fas fa-heartbeat", "pink"),
    ("Shopping", "fas fa-shopping-bag", "orange"),
    ("Petrol", "fas fa-gas-pump", "yellow"),
    ("Mobile", "fas fa-mobile-alt", "indigo"),
    ("Rent", "fas fa-home", "gray"),
]


class User(Base):
    __tablename__ = "users"
    email = Column(String, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    country = Column(String, default="India")
    created_at = Column(DateTime, default=now_utc, nullable=False)


class Expense(Base):
    __tablename__ = "expenses"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_email = Column(String, index=True, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    category = Column(String, index=True, nullable=False)
    description = Column(Text, nullable=True)
    method = Column(String, nullable=False, default="manual")
    date = Column(DateTime, index=True, nullable=False, default=now_utc)
    created_at = Column(DateTime, default=now_utc, nullable=False)


class Budget(Base):
    __tablename__ = "budgets"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_email = Column(String, unique=True, index=True, nullable=False)
    period_type = Column(String, nullable=False, default="monthly")
    amount = Column(Numeric(10, 2), nullable=False)
    category_budgets = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=now_utc, nullable=False)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc, nullable=False)


class NotificationRecord(Base):
    __tablename__ = "budget_notifications"
    __table_args__ = (
        UniqueConstraint("user_email", "kind", "period_start", name="uq_notification_period"),
    )
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_email = Column(String, index=True, nullable=False)
    budget_id = Column(Integer, nullable=False)
    kind = Column(String, nullable=False)
    period_start = Column(DateTime, nullable=False)
    fired_at = Column(DateTime, nullable=False, default=now_utc)
    message = Column(Text, nullable=False)
    acknowledged = Column(Boolean, nullable=False, default=False)


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    icon = Column(String, nullable=False)
    color = Column(String, nullable=False)
    is_default = Column(Boolean, default=True)


class UserActivity(Base):
    __tablename__ = "user_activity"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_email = Column(String, index=True, nullable=False)
    date = Column(DateTime, default=now_utc, nullable=False)
    activity_type = Column(String, nullable=False)
    activity_data = Column(JSON, nullable=True)


class NotificationSettings(Base):
    __tablename__ = "notification_settings"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_email = Column(String, unique=True, nullable=False)
    push_token = Column(Text, nullable=True)
    daily_reminders = Column(Boolean, default=True)
    budget_alerts = Column(Boolean, default=True)
    weekly_reports = Column(Boolean, default=True)
    reminder_time = Column(String, default="19:00")
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc, nullable=False)


class NotificationLog(Base):
    __tablename__ = "notification_log"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_email = Column(String, index=True, nullable=False)
    notification_type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=now_utc, nullable=False)


class UserOnboarding(Base):
    __tablename__ = "user_onboarding"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_email = Column(String, unique=True, nullable=False)
    employment_status = Column(String, nullable=True)
    monthly_income_range = Column(String, nullable=True)
    top_expense_categories = Column(JSON, default=list)
    saving_goal = Column(String, nullable=True)
    money_personality = Column(String, nullable=True)
    age_group = Column(String, nullable=True)
    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)


class UserState(Base):
    """Per-user key/value state (streaks, daily missions)."""

    __tablename__ = "user_state"
    __table_args__ = (UniqueConstraint("user_email", "key", name="uq_user_state_key"),)
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_email = Column(String, index=True, nullable=False)
    key = Column(String, nullable=False)
    value = Column(JSON, nullable=False)


def seed_categories(db):
    existing = {name for (name,) in db.query(Category.name).all()}
    for name, icon, color in DEFAULT_CATEGORIES:
        if name not in existing:
            db.add(Category(name=name, icon=icon, color=color, is_default=True))
    db.commit()


def init_db(bind=engine):
    Base.metadata.create_all(bind=bind)
    with sessionmaker(bind=bind)() as db:
        seed_categories(db)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

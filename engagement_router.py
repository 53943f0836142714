from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db, User, UserOnboarding
from missions import (
    MISSIONS_BY_ID,
    complete_mission,
    completion_streak,
    describe,
    get_user_mission,
    mission_progress,
)
from periods import date_bounds, local_date, now_utc
from schemas import MissionResponse, OnboardingIn, OnboardingResponse, StreakResponse
from stores import expenses_in_range, log_user_activity
from streaks import get_streak, streak_emoji, streak_message

engagement_router = APIRouter()


@engagement_router.post("/onboarding", response_model=OnboardingResponse)
async def save_onboarding(
    onboarding: OnboardingIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    record = (
        db.query(UserOnboarding)
        .filter(UserOnboarding.user_email == current_user.email)
        .first()
    )
    if record is None:
        record = UserOnboarding(user_email=current_user.email)
        db.add(record)

    for field, value in onboarding.model_dump().items():
        setattr(record, field, value)
    record.completed = True
    record.completed_at = now_utc()
    db.commit()
    db.refresh(record)

    log_user_activity(
        db,
        current_user.email,
        "onboarding_completed",
        {
            "employment_status": onboarding.employment_status,
            "saving_goal": onboarding.saving_goal,
            "money_personality": onboarding.money_personality,
        },
    )
    return record


@engagement_router.get("/onboarding", response_model=Optional[OnboardingResponse])
async def get_onboarding(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return (
        db.query(UserOnboarding)
        .filter(UserOnboarding.user_email == current_user.email)
        .first()
    )


@engagement_router.get("/streak", response_model=StreakResponse)
async def get_expense_streak(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    streak = get_streak(db, current_user.email)
    current = streak["current_streak"]
    return StreakResponse(
        **streak, message=streak_message(current), emoji=streak_emoji(current)
    )


def _mission_response(db: Session, user_email: str) -> MissionResponse:
    today = local_date()
    user_mission = get_user_mission(db, user_email, today)
    mission = MISSIONS_BY_ID[user_mission["mission_id"]]
    start, end = date_bounds(today)
    expenses = expenses_in_range(db, user_email, start, end)
    return MissionResponse(
        **describe(mission),
        date=today,
        completed=user_mission["completed"],
        progress=mission_progress(mission, expenses),
        completion_streak=completion_streak(db, user_email),
    )


@engagement_router.get("/missions/today", response_model=MissionResponse)
async def get_todays_mission(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return _mission_response(db, current_user.email)


@engagement_router.post("/missions/today/complete")
async def complete_todays_mission(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    completed = complete_mission(db, current_user.email)
    return {
        "completed": completed,
        "mission": _mission_response(db, current_user.email),
    }

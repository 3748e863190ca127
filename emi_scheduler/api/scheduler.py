"""
Scheduler endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from .dependencies import SchedulerSystem, get_scheduler_system
from .schemas import NotificationModel, RunReportModel, UpcomingEMIModel


router = APIRouter()


@router.post("/{user_id}/initialize", response_model=RunReportModel)
async def initialize(
    user_id: str,
    system: SchedulerSystem = Depends(get_scheduler_system)
):
    """Run the once-a-day EMI check for a user"""
    report = await system.scheduler_for(user_id).initialize(user_id)
    return RunReportModel.from_report(report)


@router.post("/{user_id}/run", response_model=RunReportModel)
async def run_now(
    user_id: str,
    system: SchedulerSystem = Depends(get_scheduler_system)
):
    """Process today's EMIs regardless of the day gate"""
    report = await system.scheduler_for(user_id).process_daily_emis()
    return RunReportModel.from_report(report)


@router.get("/{user_id}/upcoming", response_model=List[UpcomingEMIModel])
async def get_upcoming(
    user_id: str,
    days_ahead: Optional[int] = Query(None, ge=0, le=31),
    system: SchedulerSystem = Depends(get_scheduler_system)
):
    """EMIs falling due within the next days_ahead days"""
    upcoming = await system.scheduler_for(user_id).get_upcoming_emis(days_ahead)
    return [UpcomingEMIModel.from_upcoming(item) for item in upcoming]


@router.post("/{user_id}/reminders", response_model=List[NotificationModel])
async def create_reminders(
    user_id: str,
    system: SchedulerSystem = Depends(get_scheduler_system)
):
    """Create reminders for EMIs due soon"""
    created = await system.scheduler_for(user_id).create_emi_reminders()
    return [NotificationModel.from_notification(n) for n in created]

"""
Notification endpoints
"""

from typing import List
from fastapi import APIRouter, HTTPException, Depends

from .dependencies import SchedulerSystem, get_scheduler_system
from .schemas import NotificationModel


router = APIRouter()


@router.get("/{user_id}/unread", response_model=List[NotificationModel])
async def get_unread(
    user_id: str,
    system: SchedulerSystem = Depends(get_scheduler_system)
):
    """Unread notifications for a user, newest first"""
    notifications = await system.scheduler_for(user_id).get_unread_notifications()
    return [NotificationModel.from_notification(n) for n in notifications]


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    system: SchedulerSystem = Depends(get_scheduler_system)
):
    """Mark a notification as read"""
    found = await system.notifications.mark_as_read(notification_id)
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    
    return {
        "notification_id": notification_id,
        "message": "Notification marked as read"
    }

"""
Notification Store Module

In-app notifications for upcoming EMIs. A reminder is keyed by loan and due
date; the planner checks this store before creating one.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .storage import AsyncStorageInterface, StorageRecord
from .exceptions import ReadError, WriteError


class NotificationType(Enum):
    """Types of notifications"""
    EMI_REMINDER = "emi_reminder"


@dataclass
class Notification(StorageRecord):
    """In-app notification about a loan installment"""
    user_id: str
    notification_type: NotificationType
    title: str
    message: str
    loan_id: str
    loan_name: str
    emi_amount: Decimal
    due_date: date
    read: bool = False
    read_at: Optional[datetime] = None

    @classmethod
    def emi_reminder(cls, user_id: str, loan_id: str, loan_name: str, emi_amount: Decimal,
                     due_date: date, message: str) -> 'Notification':
        now = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            notification_type=NotificationType.EMI_REMINDER,
            title="EMI Due Soon",
            message=message,
            loan_id=loan_id,
            loan_name=loan_name,
            emi_amount=emi_amount,
            due_date=due_date
        )


def _notification_from_dict(data: Dict[str, Any]) -> Notification:
    return Notification(
        id=data["id"],
        created_at=datetime.fromisoformat(data["created_at"]),
        updated_at=datetime.fromisoformat(data["updated_at"]),
        user_id=data.get("user_id", ""),
        notification_type=NotificationType(data["notification_type"]),
        title=data.get("title", ""),
        message=data.get("message", ""),
        loan_id=data["loan_id"],
        loan_name=data.get("loan_name", ""),
        emi_amount=Decimal(data.get("emi_amount") or "0"),
        due_date=date.fromisoformat(data["due_date"]),
        read=data.get("read", False),
        read_at=datetime.fromisoformat(data["read_at"]) if data.get("read_at") else None
    )


class NotificationStore:
    """Notification table in shared storage"""

    def __init__(self, storage: AsyncStorageInterface, table: str = "notifications"):
        self.storage = storage
        self.table = table

    async def query(self, loan_id: str, due_date: date) -> List[Notification]:
        """EMI reminders already stored for a loan and due date, read or not"""
        try:
            records = await self.storage.find(self.table, {
                "notification_type": NotificationType.EMI_REMINDER.value,
                "loan_id": loan_id,
                "due_date": due_date.isoformat()
            })
        except Exception as e:
            raise ReadError(f"Failed to read reminders for loan {loan_id}: {e}") from e
        return [_notification_from_dict(record) for record in records]

    async def append(self, notification: Notification) -> str:
        try:
            await self.storage.save(self.table, notification.id, notification.to_dict())
        except Exception as e:
            raise WriteError(f"Failed to store notification for loan {notification.loan_id}: {e}") from e
        return notification.id

    async def list_unread(self, user_id: str) -> List[Notification]:
        """Unread notifications for a user, newest first"""
        try:
            records = await self.storage.find(self.table, {"user_id": user_id, "read": False})
        except Exception as e:
            raise ReadError(f"Failed to read notifications for user {user_id}: {e}") from e
        notifications = [_notification_from_dict(record) for record in records]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications

    async def mark_as_read(self, notification_id: str) -> bool:
        """Mark notification as read; False when it does not exist"""
        try:
            data = await self.storage.load(self.table, notification_id)
        except Exception as e:
            raise ReadError(f"Failed to read notification {notification_id}: {e}") from e
        if data is None:
            return False

        notification = _notification_from_dict(data)
        if not notification.read:
            notification.read = True
            notification.read_at = datetime.now(timezone.utc)
            notification.updated_at = notification.read_at
            try:
                await self.storage.save(self.table, notification_id, notification.to_dict())
            except Exception as e:
                raise WriteError(f"Failed to update notification {notification_id}: {e}") from e
        return True

"""
Pydantic schemas for API responses
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from ..notifications import Notification
from ..reminders import UpcomingEMI
from ..scheduler import PaymentResult, RunReport


class PaymentResultModel(BaseModel):
    loan_id: str
    loan_name: str
    amount: str = Field(..., description="Decimal amount as string")
    status: str
    principal_paid: Optional[str] = None
    interest_paid: Optional[str] = None
    error: Optional[str] = None
    
    @classmethod
    def from_result(cls, result: PaymentResult) -> 'PaymentResultModel':
        return cls(**result.to_dict())


class RunReportModel(BaseModel):
    processed_count: int
    skipped_count: int
    results: List[PaymentResultModel]
    gated: bool = False
    error: Optional[str] = None
    
    @classmethod
    def from_report(cls, report: RunReport) -> 'RunReportModel':
        return cls(
            processed_count=report.processed_count,
            skipped_count=report.skipped_count,
            results=[PaymentResultModel.from_result(r) for r in report.results],
            gated=report.gated,
            error=report.error
        )


class UpcomingEMIModel(BaseModel):
    loan_id: str
    loan_name: str
    lender: str
    emi_amount: str
    days_until: int
    due_date: str  # ISO date string
    
    @classmethod
    def from_upcoming(cls, item: UpcomingEMI) -> 'UpcomingEMIModel':
        return cls(
            loan_id=item.loan.id,
            loan_name=item.loan.name,
            lender=item.loan.lender,
            emi_amount=str(item.loan.emi_amount),
            days_until=item.days_until,
            due_date=item.due_date.isoformat()
        )


class NotificationModel(BaseModel):
    id: str
    type: str
    title: str
    message: str
    loan_id: str
    loan_name: str
    emi_amount: str
    due_date: str
    read: bool
    created_at: str
    
    @classmethod
    def from_notification(cls, notification: Notification) -> 'NotificationModel':
        return cls(
            id=notification.id,
            type=notification.notification_type.value,
            title=notification.title,
            message=notification.message,
            loan_id=notification.loan_id,
            loan_name=notification.loan_name,
            emi_amount=str(notification.emi_amount),
            due_date=notification.due_date.isoformat(),
            read=notification.read,
            created_at=notification.created_at.isoformat()
        )

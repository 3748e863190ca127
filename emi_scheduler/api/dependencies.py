"""
Scheduler system wiring for the API
"""

from typing import Dict, Optional

from ..clock import Clock, SystemClock
from ..config import SchedulerConfig, get_config
from ..day_gate import DayGateStore, InMemoryDayGateStore, JSONFileDayGateStore
from ..ledger import LedgerStore
from ..loans import LoanRepository
from ..notifications import NotificationStore
from ..scheduler import EMIScheduler
from ..storage import AsyncStorageInterface, create_storage


class SchedulerSystem:
    """Shared stores plus one scheduler per user"""
    
    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        storage: Optional[AsyncStorageInterface] = None,
        clock: Optional[Clock] = None,
        day_gate: Optional[DayGateStore] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config)
        self.clock = clock or SystemClock(self.config.timezone or None)
        
        if day_gate is not None:
            self.day_gate = day_gate
        elif self.config.day_gate_path:
            self.day_gate = JSONFileDayGateStore(self.config.day_gate_path)
        else:
            self.day_gate = InMemoryDayGateStore()
        
        self.loans = LoanRepository(self.storage)
        self.ledger = LedgerStore(self.storage)
        self.notifications = NotificationStore(self.storage)
        self._schedulers: Dict[str, EMIScheduler] = {}
    
    def scheduler_for(self, user_id: str) -> EMIScheduler:
        """Scheduler bound to a user, reused across requests"""
        if user_id not in self._schedulers:
            self._schedulers[user_id] = EMIScheduler(
                loans=self.loans,
                ledger=self.ledger,
                notifications=self.notifications,
                user_id=user_id,
                day_gate=self.day_gate,
                clock=self.clock,
                config=self.config
            )
        return self._schedulers[user_id]
    
    async def close(self) -> None:
        await self.storage.close()


_system: Optional[SchedulerSystem] = None


def get_scheduler_system() -> SchedulerSystem:
    """FastAPI dependency returning the process-wide scheduler system"""
    global _system
    if _system is None:
        _system = SchedulerSystem()
    return _system

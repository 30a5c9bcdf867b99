"""Credit Reservation Repository Interface"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from credit_engine.domain.credit_reservation import CreditReservation


class CreditReservationRepository(ABC):

    @abstractmethod
    async def create(self, reservation: CreditReservation) -> CreditReservation:
        pass

    @abstractmethod
    async def get_by_id(self, reservation_id: int, for_update: bool = False) -> Optional[CreditReservation]:
        pass

    @abstractmethod
    async def save(self, reservation: CreditReservation) -> CreditReservation:
        pass

    @abstractmethod
    async def list_overdue(self, now: datetime, limit: int = 500) -> List[CreditReservation]:
        """Open reservations whose deadline has passed"""
        pass

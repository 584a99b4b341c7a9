"""Ledger domain - Commands, sales, commissions and cash register sessions"""

from .cash_register_service import CashRegisterService
from .command_service import CommandService
from .router import router

__all__ = ["router", "CommandService", "CashRegisterService"]

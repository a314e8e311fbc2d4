"""FastAPI dependencies shared by the routers."""

from farmvault.config import settings
from farmvault.database import async_session
from farmvault.services.ledger import HarvestLedger

_ledger: HarvestLedger | None = None


def get_ledger() -> HarvestLedger:
    """The process-wide ledger bound to the default session factory.

    Tests override this dependency with a ledger on their own database.
    """
    global _ledger
    if _ledger is None:
        _ledger = HarvestLedger(async_session, settings)
    return _ledger

"""Aggregate model imports for Alembic auto-detection and create_all."""

from farmvault.models.harvest_collection import CollectionStatus, HarvestCollection
from farmvault.models.picker import HarvestPicker
from farmvault.models.weigh_entry import PickerWeighEntry
from farmvault.models.payment_batch import HarvestPaymentBatch
from farmvault.models.cash_pool import HarvestCashPool
from farmvault.models.wallet import (
    CollectionCashUsage,
    HarvestWallet,
    HarvestWalletPayment,
    usage_id_for,
    wallet_id_for,
)
from farmvault.models.sales import Harvest, Sale
from farmvault.models.activity_log import ActivityLog

__all__ = [
    # Collection & weigh ledger
    "CollectionStatus", "HarvestCollection", "HarvestPicker", "PickerWeighEntry",
    # Cash
    "HarvestPaymentBatch", "HarvestCashPool",
    "HarvestWallet", "CollectionCashUsage", "HarvestWalletPayment",
    "wallet_id_for", "usage_id_for",
    # Sales ledger
    "Harvest", "Sale",
    # Audit
    "ActivityLog",
]

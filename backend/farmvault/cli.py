"""Management CLI for the harvest ledger.

Usage:
    python -m farmvault.cli init-db                           # Create all tables
    python -m farmvault.cli wallet <company> <project> <crop> # Show a wallet
"""

import sys

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from farmvault.config import settings
from farmvault.database import Base
from farmvault.models import CollectionCashUsage, HarvestWallet, wallet_id_for


def init_db():
    """Create every ledger table that does not exist yet (no migrations)."""
    engine = create_engine(settings.database_url_sync)
    Base.metadata.create_all(engine)
    print(f"Created {len(Base.metadata.tables)} table(s)")


def show_wallet(company_id: str, project_id: str, crop_type: str):
    wallet_id = wallet_id_for(company_id, project_id, crop_type)
    engine = create_engine(settings.database_url_sync)
    with Session(engine) as session:
        wallet = session.get(HarvestWallet, wallet_id)
        if wallet is None:
            print(f"No harvest wallet found: {wallet_id}")
            return 1
        print(f"  Wallet     {wallet.id}")
        print(f"  Received   {wallet.cash_received_total:,.2f}")
        print(f"  Paid out   {wallet.cash_paid_out_total:,.2f}")
        print(f"  Balance    {wallet.current_balance:,.2f}")

        usage = session.execute(
            select(CollectionCashUsage).where(CollectionCashUsage.wallet_id == wallet_id)
        ).scalars().all()
        for u in usage:
            print(f"    {u.collection_id}  {u.total_deducted:,.2f}")
        print(f"\n{len(usage)} collection(s) drew on this wallet")
    return 0


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "init-db":
        init_db()
    elif cmd == "wallet" and len(sys.argv) == 5:
        sys.exit(show_wallet(*sys.argv[2:5]))
    else:
        print("Usage: python -m farmvault.cli [init-db | wallet <company> <project> <crop>]")
        sys.exit(2)

"""FarmVault harvest collection & cash settlement ledger."""

"""Single-location resort booking and ledger manager."""

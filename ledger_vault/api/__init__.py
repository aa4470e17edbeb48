"""HTTP operation surface for ledger-vault."""

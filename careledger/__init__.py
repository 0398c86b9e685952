"""Membership care ledger: member balances, care sessions and signed settlement."""

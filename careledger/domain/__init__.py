"""Pure business rules: tiers, discounts, balance ledger and error taxonomy."""

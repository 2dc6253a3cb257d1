"""Leave module — entitlement ledger, request lifecycle, accrual and overtime rules."""

"""Leave Engine — leave accrual, overtime crediting and leave-request ledger."""

__version__ = "1.0.0"

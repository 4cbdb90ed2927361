"""
Route Sales Kernel

Point-of-sale recording against per-container stock ledgers, with:
- Validate-then-commit sales against available stock
- Conditional (never negative) stock decrements
- Daily per-operator settlement with merge-by-sum closes
- Settlement-before-retirement ordering of the destructive close
- Minimal-quoting CSV reports for sales and settlements
"""

__version__ = "0.1.0"

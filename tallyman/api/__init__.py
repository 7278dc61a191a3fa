"""
Tallyman REST API.

Provides DRF ViewSets for:
- Product reconciliation (stock and price)
- Product stock status
"""

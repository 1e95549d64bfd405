"""Rental store vertical.

Stock availability and booking for a rental catalog:
- SQLAlchemy models for products, bundles, orders and stock holds
- Availability calculator over the hold ledger
- Booking conflict resolver serialized per product
- Order lifecycle manager that releases holds on cancellation
- Bundle expander
- FastAPI router and weekly pricing rules
"""

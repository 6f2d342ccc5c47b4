"""
Pool Pricing Package

Pricing and quote generation for a swimming-pool sales back office.
Turns a pool configuration into priced quote lines using
Geometry → Catalog Prices → Set/Skeleton → Addons → Accessories.
"""

__version__ = "1.0.0"

"""
ordershard

Transactional order / order item data access over a single PostgreSQL server
or a sharding proxy in front of many.
"""

__version__ = "0.1.0"

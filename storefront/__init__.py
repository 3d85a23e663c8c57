"""
Storefront

Product catalog, search, accounts and checkout over a PostgreSQL backend
with boot-time fallback to an embedded SQLite file.
"""

__version__ = "1.0.0"

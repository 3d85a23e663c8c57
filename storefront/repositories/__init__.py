"""
Repositories

Entity reads and writes over a ``BackendHandle``.
"""

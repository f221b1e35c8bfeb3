"""
Staminads schema migration coordinator.

Evolves the ClickHouse schema of the shared system database and of every
tenant workspace database, one major version at a time, guarded by a lease
so concurrently starting API replicas never migrate twice.
"""

__version__ = "5.0.0"

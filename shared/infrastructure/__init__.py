"""
Infrastructure module: log correlation.
"""

from shared.infrastructure.correlation import (
    ConnectionIdFilter,
    bind_connection_id,
    connection_id_var,
    get_connection_id,
    new_connection_id,
    reset_connection_id,
)

__all__ = [
    "ConnectionIdFilter",
    "bind_connection_id",
    "connection_id_var",
    "get_connection_id",
    "new_connection_id",
    "reset_connection_id",
]

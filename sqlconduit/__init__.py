"""SQL Conduit: a connectivity and execution layer for relational databases.

SQL Conduit provides:
- A dialect plugin registry with entry-point discovery
- Cached schema discovery for navigation trees
- Background health monitoring with bounded recovery
- Statement execution with caching, pagination, batching and async dispatch
- YAML-based configuration and a rich command line
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from sqlconduit.exceptions import (
    ConduitError,
    ConfigurationError,
    ConnectivityError,
    PoolExhaustedError,
    StatementSetupError,
    UnsupportedDialectError,
)

__all__ = [
    "__version__",
    "ConduitError",
    "ConfigurationError",
    "ConnectivityError",
    "PoolExhaustedError",
    "StatementSetupError",
    "UnsupportedDialectError",
]

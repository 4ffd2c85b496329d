"""SQLite dialect plugin."""

import time
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Connection, URL

from sqlconduit.config.models import ConnectionDescriptor
from sqlconduit.dialects.base import DialectPlugin, DriverConfig


class SQLiteDialect(DialectPlugin):
    """SQLite dialect plugin for file and in-memory databases."""

    identifier = "SQLITE"
    display_name = "SQLite"
    driver_configs = (
        DriverConfig(name="sqlite3", drivername="sqlite", package="sqlite3", default=True),
    )
    password_connect_param = None
    PROGRESS_STEPS = 10000

    def build_url(
        self,
        descriptor: ConnectionDescriptor,
        password: Optional[str] = None,
        driver: Optional[DriverConfig] = None,
    ) -> URL:
        driver_config = driver or self.default_driver_config
        return URL.create(drivername=driver_config.drivername, database=descriptor.file_path)

    def connect_args(self, timeout: int) -> Dict[str, Any]:
        # Pooled connections are handed between threads
        return {'timeout': timeout, 'check_same_thread': False}

    def apply_statement_timeout(self, connection: Any, cursor: Any, seconds: int) -> None:
        """Interrupt statements still running after ``seconds``.

        sqlite3 has no statement timeout, so a progress handler polled every
        ``PROGRESS_STEPS`` virtual machine instructions aborts the statement
        with ``OperationalError: interrupted`` once the deadline passes.
        """
        driver = self.driver_connection(connection)
        if seconds <= 0:
            driver.set_progress_handler(None, 0)
            return

        deadline = time.monotonic() + seconds
        driver.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, self.PROGRESS_STEPS)

    def list_catalogs(self, connection: Connection) -> List[str]:
        result = connection.exec_driver_sql("PRAGMA database_list")
        return [str(row[1]) for row in result]

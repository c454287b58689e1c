"""
Embedded PostgreSQL server for the JSONB driver.
Uses pgserver for pip-installable PostgreSQL binaries.
"""

import logging
import os

import psycopg2

import pgserver

from entities.postgres import PostgresDriver

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "ENTITIES_PGDATA"

DEFAULT_DATA_DIR = os.path.join(
    os.path.dirname(__file__), "..", ".pgdata", "entities"
)


class EmbeddedServer:
    """Manages an embedded PostgreSQL instance.

    Usage:
        with EmbeddedServer() as server:
            driver = server.driver()
            ...
    """

    def __init__(self, data_dir=None):
        data_dir = data_dir or os.environ.get(DATA_DIR_ENV) or DEFAULT_DATA_DIR
        self.data_dir = os.path.abspath(data_dir)
        self._pg = None

    def start(self):
        """Start the embedded PostgreSQL server."""
        os.makedirs(self.data_dir, exist_ok=True)
        self._pg = pgserver.get_server(self.data_dir)
        logger.debug("Embedded PostgreSQL running from %s", self.data_dir)
        return self

    def uri(self) -> str:
        if self._pg is None:
            raise RuntimeError("Embedded server is not running")
        return self._pg.get_uri()

    def connect(self):
        """Open a new psycopg2 connection to the server."""
        return psycopg2.connect(self.uri())

    def driver(self, registry=None) -> PostgresDriver:
        """A PostgresDriver on a fresh connection."""
        return PostgresDriver(self.connect(), registry)

    def stop(self):
        """Stop the embedded PostgreSQL server."""
        if self._pg:
            self._pg.cleanup()
            self._pg = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()

"""
db/init_db.py
-------------
Creates the application database if it does not exist, then replays the
SQL scripts of a folder inside one transaction.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

import re
from pathlib import Path
from typing import Union

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import parse_dsn

from config import DATABASE_URL, MASTER_DATABASE_URL, SCRIPTS_FOLDER, validate_config
from db.connection import PostgresConnectionFactory, Transaction, open_connection
from utils.errors import ConfigurationError
from utils.logger import get_logger

logger = get_logger(__name__)

# A line holding only the batch separator, as in SQL Server tooling.
_BATCH_SEPARATOR = re.compile(r"^\s*GO\s*;?\s*$", re.IGNORECASE | re.MULTILINE)


def database_name(database_url: str) -> str:
    """
    Extract the database name from a DSN or postgresql:// URL.

    Raises:
        ConfigurationError: If the DSN does not name a database.
    """
    try:
        name = parse_dsn(database_url).get("dbname")
    except psycopg2.ProgrammingError as e:
        raise ConfigurationError(f"Invalid connection string: {e}") from e
    if not name:
        raise ConfigurationError("DATABASE_URL does not name a database.")
    return name


def split_batches(script: str) -> list[str]:
    """Split a script on separator lines, dropping blank batches."""
    return [batch.strip() for batch in _BATCH_SEPARATOR.split(script) if batch.strip()]


def ensure_database(master_url: str, name: str) -> bool:
    """
    Create database `name` through the master connection if missing.

    Returns:
        True if the database was created, False if it already existed.
    """
    with open_connection(PostgresConnectionFactory(master_url)) as conn:
        # CREATE DATABASE cannot run inside a transaction block.
        conn.autocommit = True
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM pg_database WHERE datname = %s;", (name,))
            if cur.fetchone():
                logger.info(f"Database '{name}' is ready.")
                return False
            cur.execute(sql.SQL("CREATE DATABASE {};").format(sql.Identifier(name)))
    logger.info(f"Database '{name}' created.")
    return True


def run_scripts(database_url: str, scripts_folder: Union[str, Path]) -> int:
    """
    Execute every *.sql file of `scripts_folder`, in file-name order,
    within a single transaction.

    Returns:
        Number of batches executed.

    Raises:
        Whatever the driver raised; the transaction is rolled back first.
    """
    script_files = sorted(Path(scripts_folder).glob("*.sql"))
    executed = 0
    current_file = None

    with open_connection(PostgresConnectionFactory(database_url)) as conn:
        transaction = Transaction(conn)
        try:
            with conn.cursor() as cur:
                for path in script_files:
                    current_file = path.name
                    for batch in split_batches(path.read_text(encoding="utf-8")):
                        cur.execute(batch)
                        executed += 1
                        logger.info(f"Executed batch from {path.name}:\n{batch}")
            transaction.commit()
        except psycopg2.Error as e:
            logger.error(f"Database error while executing {current_file}")
            diag = e.diag
            logger.error(
                f"SQLSTATE={e.pgcode}, Message={diag.message_primary}, "
                f"Position={diag.statement_position}, Context={diag.context}"
            )
            transaction.rollback()
            raise
        except Exception as e:
            transaction.rollback()
            logger.error(f"Transaction rolled back due to error: {e}")
            raise

    logger.info(f"All scripts executed successfully ({executed} batches) and transaction committed.")
    return executed


def create_database_and_tables(master_url: str, database_url: str, scripts_folder: Union[str, Path]) -> None:
    """Create the target database if absent, then apply the bootstrap scripts."""
    logger.info("Starting database setup...")
    ensure_database(master_url, database_name(database_url))
    run_scripts(database_url, scripts_folder)


if __name__ == "__main__":
    validate_config()
    create_database_and_tables(MASTER_DATABASE_URL, DATABASE_URL, SCRIPTS_FOLDER)
    print("Database schema created successfully.")

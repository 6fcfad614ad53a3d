"""
main.py
-------
Entry point for the user data-access layer.

Responsibilities:
    - Validate configuration before touching the database.
    - Create the database and apply the bootstrap scripts.
    - Walk through the repository operations against the live database.
"""

import sys

from config import (
    DATABASE_URL,
    DB_CONNECT_TIMEOUT,
    MASTER_DATABASE_URL,
    SCRIPTS_FOLDER,
    validate_config,
)
from db.connection import PostgresConnectionFactory
from db.executor import PsycopgQueryExecutor
from db.init_db import create_database_and_tables
from models.user import User, to_dto
from repositories.user_repo import UserRepository
from utils.errors import ConflictError
from utils.logger import get_logger, mask_dsn

logger = get_logger(__name__)


def log_page(result) -> None:
    logger.info(
        f"Total users found: {result.total_count} "
        f"(page {result.page}/{result.total_pages}, size {result.page_size})"
    )
    for user in result.items:
        logger.info(f"{user.id}: {user.email} - {user.name}")


def usage_examples(repo: UserRepository) -> None:
    """Exercise every repository operation once."""

    # ── 1. Insert or reactivate ───────────────────────────
    try:
        user_id = repo.upsert(User(email="alice@example.com", name="Alice"))
    except ConflictError:
        # Left active by a previous run.
        user_id = repo.search(search_term="alice@example.com").items[0].id

    # ── 2. Soft delete, then read back ────────────────────
    repo.soft_delete(user_id)
    active = repo.get_all()
    logger.info(f"Active users: {len(active)}")
    logger.info(f"Alice visible: {repo.get_by_id(user_id) is not None}")
    logger.info(f"Alice with deleted: {repo.get_by_id(user_id, include_deleted=True)}")

    # ── 3. Search with out-of-range paging (sanitized) ────
    log_page(repo.search(search_term="alice", sort_column="name", page=-1, page_size=-1, include_deleted=True))

    # ── 4. Brand new user, renamed ────────────────────────
    try:
        bob_id = repo.upsert(User(email="bob@example.com", name="Bob"))
    except ConflictError as e:
        logger.warning(str(e))
    else:
        repo.update(User(id=bob_id, email="bob@example.com", name="Robert"))

    # ── 5. Reactivate Alice, then hit the conflict ────────
    repo.upsert(User(email="alice@example.com", name="Alice Updated"))
    try:
        repo.upsert(User(email="alice@example.com", name="Alice Again"))
    except ConflictError as e:
        logger.warning(str(e))

    # ── 6. Public view of a page ──────────────────────────
    page = repo.search(search_term="alice", sort_column="Name", page=1, page_size=10)
    log_page(page)
    for dto in page.map(to_dto).items:
        logger.info(f"DTO: {dto}")


def main() -> int:
    """Validate, bootstrap and run the walkthrough. Returns the exit code."""
    logger.info("Application starting...")
    try:
        validate_config()
        logger.info(f"Master connection: {mask_dsn(MASTER_DATABASE_URL)}")
        logger.info(f"Default connection: {mask_dsn(DATABASE_URL)}")
        logger.info(f"Scripts folder: {SCRIPTS_FOLDER}")

        create_database_and_tables(MASTER_DATABASE_URL, DATABASE_URL, SCRIPTS_FOLDER)

        repo = UserRepository(
            PostgresConnectionFactory(DATABASE_URL, connect_timeout=DB_CONNECT_TIMEOUT),
            PsycopgQueryExecutor(),
        )
        usage_examples(repo)
    except Exception:
        logger.critical("Application terminated unexpectedly!", exc_info=True)
        return 1
    logger.info("Application finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

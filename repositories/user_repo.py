"""
repositories/user_repo.py
--------------------------
Data access layer for user records.
All SQL queries related to the `users` table live here.

Rows are never physically deleted: `soft_delete` flags them and
`upsert` brings them back.
"""

from typing import Optional

from db.connection import ConnectionFactory, open_connection
from db.executor import QueryExecutor
from models.paging import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, PagedResult, sanitize
from models.user import User
from utils.errors import ConflictError, InvalidArgumentError
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = "id, email, name, is_deleted, deleted_at, created_at, updated_at"

# Accepted sort keys (lower-cased) -> column. Nothing else reaches ORDER BY.
SORT_COLUMNS: dict[str, str] = {
    "id": "id",
    "email": "email",
    "name": "name",
    "is_deleted": "is_deleted",
    "isdeleted": "is_deleted",
    "deleted_at": "deleted_at",
    "deletedat": "deleted_at",
    "created_at": "created_at",
    "createdat": "created_at",
    "updated_at": "updated_at",
    "updatedat": "updated_at",
}


def resolve_sort_column(sort_column: Optional[str]) -> str:
    """
    Map a caller-supplied sort key to a column name.

    Blank input means the default order (by id).

    Raises:
        InvalidArgumentError: If the key is not in SORT_COLUMNS.
    """
    if sort_column is None or not sort_column.strip():
        return "id"
    column = SORT_COLUMNS.get(sort_column.strip().lower())
    if column is None:
        raise InvalidArgumentError(
            f"Cannot sort by '{sort_column}'. Allowed: {', '.join(sorted(set(SORT_COLUMNS.values())))}."
        )
    return column


def _require_email(user: User) -> None:
    if not user.email or not user.email.strip():
        raise InvalidArgumentError("User email cannot be null or empty.")


def _like_pattern(term: str) -> str:
    """Substring pattern for ILIKE with the term's wildcards matched literally."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class UserRepository:
    """Repository for CRUD, search and soft-delete operations on the users table."""

    def __init__(self, connection_factory: ConnectionFactory, executor: QueryExecutor):
        self._connections = connection_factory
        self._db = executor

    # ── READ ──────────────────────────────────────────────

    def get_all(self, include_deleted: bool = False) -> list[User]:
        """
        Fetch every user, soft-deleted ones only when asked.

        No ordering is guaranteed; use `search` for a sorted listing.
        """
        sql = f"SELECT {_COLUMNS} FROM users WHERE (%(include_deleted)s OR NOT is_deleted);"
        with open_connection(self._connections) as conn:
            return self._db.query(
                conn, sql, {"include_deleted": include_deleted}, row_type=User
            )

    def get_by_id(self, user_id: int, include_deleted: bool = False) -> Optional[User]:
        """
        Fetch a single user by primary key.

        Returns:
            The User, or None if it does not exist or is hidden by the
            soft-delete filter.
        """
        sql = f"""
            SELECT {_COLUMNS} FROM users
            WHERE id = %(id)s AND (%(include_deleted)s OR NOT is_deleted);
        """
        with open_connection(self._connections) as conn:
            return self._db.query_single_or_default(
                conn, sql, {"id": user_id, "include_deleted": include_deleted}, row_type=User
            )

    def search(
        self,
        search_term: Optional[str] = None,
        sort_column: Optional[str] = None,
        sort_descending: bool = False,
        page: int = DEFAULT_PAGE,
        page_size: int = DEFAULT_PAGE_SIZE,
        include_deleted: bool = False,
    ) -> PagedResult[User]:
        """
        Filter, sort and page users.

        Args:
            search_term: Case-insensitive substring matched against email or
                name. Blank means no filter.
            sort_column: Key from SORT_COLUMNS; blank sorts by id ascending.
            sort_descending: Reverse the order of `sort_column`.
            page: 1-based page number; non-positive falls back to 1.
            page_size: Rows per page; non-positive falls back to 20, capped
                at MAX_PAGE_SIZE.
            include_deleted: Include soft-deleted users.

        Returns:
            A PagedResult whose total_count covers every matching row.

        Raises:
            InvalidArgumentError: For a sort key outside the allow-list.

        The count and the page run as one batch without a transaction, so
        under concurrent writes they may disagree slightly.
        """
        page, page_size = sanitize(page, page_size)
        if sort_column and sort_column.strip():
            column = resolve_sort_column(sort_column)
            order_by = f"{column} {'DESC' if sort_descending else 'ASC'}"
            if column != "id":
                # Tie-breaker keeps page slices disjoint on duplicate values.
                order_by += ", id"
        else:
            order_by = "id ASC"

        term = search_term.strip() if search_term and search_term.strip() else None

        where = """
            WHERE (%(include_deleted)s OR NOT is_deleted)
              AND (%(search_term)s IS NULL OR email ILIKE %(pattern)s OR name ILIKE %(pattern)s)
        """
        sql = f"""
            -- Count
            SELECT COUNT(*) FROM users
            {where};

            -- Page
            SELECT {_COLUMNS} FROM users
            {where}
            ORDER BY {order_by}
            OFFSET %(offset)s LIMIT %(page_size)s;
        """
        params = {
            "include_deleted": include_deleted,
            "search_term": term,
            "pattern": _like_pattern(term) if term else None,
            "offset": (page - 1) * page_size,
            "page_size": page_size,
        }

        with open_connection(self._connections) as conn:
            with self._db.query_multiple(conn, sql, params) as results:
                total_count = results.read_single(row_type=int)
                items = results.read(row_type=User)

        return PagedResult(items=items, total_count=total_count, page=page, page_size=page_size)

    # ── CREATE ────────────────────────────────────────────

    def insert(self, user: User) -> int:
        """
        Insert a new user.

        Returns:
            The generated id.

        Raises:
            InvalidArgumentError: If the email is empty.
            DataAccessError: On constraint violations (e.g. duplicate email).
        """
        _require_email(user)
        sql = "INSERT INTO users (email, name) VALUES (%(email)s, %(name)s) RETURNING id;"
        with open_connection(self._connections) as conn:
            try:
                user_id = self._db.query_single(
                    conn, sql, {"email": user.email, "name": user.name}, row_type=int
                )
            except Exception as e:
                logger.error(f"Failed to insert user {user.email}: {e}")
                raise
        logger.info(f"Inserted user #{user_id} ({user.email})")
        return user_id

    # ── UPDATE ────────────────────────────────────────────

    def update(self, user: User) -> int:
        """
        Rename an active user and refresh updated_at.

        Returns:
            Rows affected: 0 when the user does not exist or is soft-deleted.
        """
        sql = """
            UPDATE users
            SET name = %(name)s, updated_at = NOW()
            WHERE id = %(id)s AND NOT is_deleted;
        """
        with open_connection(self._connections) as conn:
            try:
                affected = self._db.execute(conn, sql, {"id": user.id, "name": user.name})
            except Exception as e:
                logger.error(f"Failed to update user #{user.id}: {e}")
                raise
        if affected:
            logger.info(f"Updated user #{user.id}")
        return affected

    def upsert(self, user: User) -> int:
        """
        Insert a user, or reactivate a soft-deleted one with the same email.
        Emails are compared case-insensitively.

        Check-then-act without a lock: two concurrent upserts of a new email
        can both try to insert; the unique index lets one fail.

        Returns:
            The new id, or the id of the reactivated user.

        Raises:
            InvalidArgumentError: If the email is empty.
            ConflictError: If an active user already has this email.
        """
        _require_email(user)
        sql_check = "SELECT id, is_deleted FROM users WHERE lower(email) = lower(%(email)s);"
        sql_reactivate = """
            UPDATE users
            SET is_deleted = FALSE,
                deleted_at = NULL,
                name = %(name)s,
                updated_at = NOW()
            WHERE id = %(id)s;
        """
        sql_insert = "INSERT INTO users (email, name) VALUES (%(email)s, %(name)s) RETURNING id;"

        with open_connection(self._connections) as conn:
            try:
                existing = self._db.query_single_or_default(conn, sql_check, {"email": user.email})

                if existing is not None:
                    if not existing["is_deleted"]:
                        logger.warning(f"Upsert rejected: active user with email {user.email} exists")
                        raise ConflictError(f"User with email '{user.email}' already exists.")
                    self._db.execute(conn, sql_reactivate, {"id": existing["id"], "name": user.name})
                    logger.info(f"Reactivated user #{existing['id']} ({user.email})")
                    return existing["id"]

                user_id = self._db.query_single(
                    conn, sql_insert, {"email": user.email, "name": user.name}, row_type=int
                )
            except ConflictError:
                raise
            except Exception as e:
                logger.error(f"Failed to upsert user {user.email}: {e}")
                raise
        logger.info(f"Inserted user #{user_id} ({user.email})")
        return user_id

    # ── DELETE ────────────────────────────────────────────

    def soft_delete(self, user_id: int) -> int:
        """
        Flag a user as deleted and stamp deleted_at / updated_at.
        Repeating it keeps the first deleted_at.

        Returns:
            Rows affected: 0 when the id does not exist.
        """
        sql = """
            UPDATE users
            SET is_deleted = TRUE,
                deleted_at = COALESCE(deleted_at, NOW()),
                updated_at = NOW()
            WHERE id = %(id)s;
        """
        with open_connection(self._connections) as conn:
            try:
                affected = self._db.execute(conn, sql, {"id": user_id})
            except Exception as e:
                logger.error(f"Failed to soft-delete user #{user_id}: {e}")
                raise
        if affected:
            logger.info(f"Soft-deleted user #{user_id}")
        return affected

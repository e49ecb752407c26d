import sqlite3, os, queue, threading, logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, List, Optional, Tuple, TypeVar

from starlette.concurrency import run_in_threadpool

from .errors import ConflictError, ServiceUnavailableError
from .models import OAuthAccount, Provider, Session, User, to_db_timestamp

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("DB_PATH", "auth.db")

T = TypeVar("T")


def get_database_url() -> str:
    """Get database URL for Alembic."""
    db_url = os.getenv("DATABASE_URL")
    if db_url:
        return db_url
    return f"sqlite:///{DB_PATH}"


def connect(path: str, busy_timeout: float = 5.0) -> sqlite3.Connection:
    # Autocommit mode; transactions are opened explicitly by Database.transaction()
    conn = sqlite3.connect(path, timeout=busy_timeout, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def DB(path = None):
    p = path or DB_PATH
    conn = connect(p)
    try:
        yield Database(conn)
        conn.commit()
    finally:
        conn.close()


class ConnectionPool:
    """Bounded pool of sqlite connections shared by all requests.

    Connections are opened lazily up to ``size``. When all are checked out,
    ``acquire`` waits up to ``timeout`` seconds and then raises
    ServiceUnavailableError.
    """

    def __init__(self, path: str, size: int = 10, timeout: float = 5.0):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.path = path
        self.size = size
        self.timeout = timeout
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue(maxsize=size)
        self._lock = threading.Lock()
        self._opened = 0
        self._closed = False

    def acquire(self) -> sqlite3.Connection:
        if self._closed:
            raise ServiceUnavailableError("Database pool is closed")

        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass

        with self._lock:
            if self._opened < self.size:
                self._opened += 1
                open_new = True
            else:
                open_new = False

        if open_new:
            try:
                return connect(self.path, busy_timeout=self.timeout)
            except sqlite3.Error as e:
                with self._lock:
                    self._opened -= 1
                logger.error(f"Could not open database connection: {e}")
                raise ServiceUnavailableError("Database connection failed") from e

        try:
            return self._idle.get(timeout=self.timeout)
        except queue.Empty:
            logger.error(f"Timed out after {self.timeout}s waiting for a database connection")
            raise ServiceUnavailableError("Database connection pool exhausted")

    def release(self, conn: sqlite3.Connection) -> None:
        if not self._closed and conn.in_transaction:
            logger.warning("Connection returned with an open transaction, rolling back")
            try:
                conn.rollback()
            except sqlite3.Error as e:
                logger.error(f"Rollback failed, discarding connection: {e}")
                self._discard(conn)
                return

        if self._closed:
            self._discard(conn)
            return
        self._idle.put_nowait(conn)

    def _discard(self, conn: sqlite3.Connection) -> None:
        conn.close()
        with self._lock:
            self._opened -= 1

    @contextmanager
    def connection(self):
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def close(self) -> None:
        """Close idle connections; checked-out ones are closed on release."""
        self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            self._discard(conn)
        logger.info("Database pool closed")


class Database:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def init_schema(self, schema_path: str = "schema.sql"):
        with open(schema_path, "r", encoding="utf-8") as f:
            self.conn.executescript(f.read())

    @contextmanager
    def transaction(self):
        """BEGIN IMMEDIATE ... COMMIT, rolled back on any exception.

        IMMEDIATE takes the write lock up front so two concurrent logins
        cannot both read "no link" and then both insert.
        """
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield self
            self.conn.commit()
        except BaseException:
            # A failed COMMIT (busy, deferred constraint) leaves the transaction open
            if self.conn.in_transaction:
                self.conn.rollback()
            raise

    # Users

    def find_user_by_id(self, user_id: int) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE id = ? LIMIT 1", (user_id,)).fetchone()
        return User.from_row(row) if row else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE email = ? LIMIT 1", (email,)).fetchone()
        return User.from_row(row) if row else None

    def create_user(self, email: str, name: Optional[str], avatar_url: Optional[str], now: datetime) -> User:
        ts = to_db_timestamp(now)
        cur = self.conn.execute(
            "INSERT INTO users (email, name, avatar_url, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (email, name, avatar_url, ts, ts)
        )
        return self.find_user_by_id(cur.lastrowid)

    def update_user_profile(self, user_id: int, name: Optional[str], avatar_url: Optional[str],
                            now: datetime) -> User:
        """Overwrite name/avatar where a value is given; keep the stored value otherwise."""
        self.conn.execute(
            """UPDATE users
               SET name = COALESCE(?, name),
                   avatar_url = COALESCE(?, avatar_url),
                   updated_at = ?
               WHERE id = ?""",
            (name, avatar_url, to_db_timestamp(now), user_id)
        )
        return self.find_user_by_id(user_id)

    # Provider links

    def find_oauth_account(self, provider: Provider, provider_user_id: str) -> Optional[OAuthAccount]:
        row = self.conn.execute(
            "SELECT * FROM oauth_accounts WHERE provider = ? AND provider_user_id = ? LIMIT 1",
            (provider.value, provider_user_id)
        ).fetchone()
        return OAuthAccount.from_row(row) if row else None

    def create_oauth_account(self, user_id: int, provider: Provider, provider_user_id: str,
                             now: datetime) -> OAuthAccount:
        cur = self.conn.execute(
            """INSERT INTO oauth_accounts (user_id, provider, provider_user_id, created_at)
               VALUES (?, ?, ?, ?)""",
            (user_id, provider.value, provider_user_id, to_db_timestamp(now))
        )
        row = self.conn.execute("SELECT * FROM oauth_accounts WHERE id = ?", (cur.lastrowid,)).fetchone()
        return OAuthAccount.from_row(row)

    def list_oauth_accounts(self, user_id: int) -> List[OAuthAccount]:
        rows = self.conn.execute(
            "SELECT * FROM oauth_accounts WHERE user_id = ? ORDER BY id", (user_id,)
        ).fetchall()
        return [OAuthAccount.from_row(r) for r in rows]

    # Sessions

    def create_session(self, user_id: int, token_hash: str, expires_at: datetime, now: datetime) -> Session:
        cur = self.conn.execute(
            """INSERT INTO sessions (user_id, token_hash, expires_at, created_at)
               VALUES (?, ?, ?, ?)""",
            (user_id, token_hash, to_db_timestamp(expires_at), to_db_timestamp(now))
        )
        row = self.conn.execute("SELECT * FROM sessions WHERE id = ?", (cur.lastrowid,)).fetchone()
        return Session.from_row(row)

    def find_session_by_token_hash(self, token_hash: str, now: datetime) -> Optional[Tuple[Session, User]]:
        """Live session for a token hash together with its user; expired rows count as missing."""
        row = self.conn.execute(
            """SELECT s.id AS session_id, s.user_id, s.token_hash, s.expires_at,
                      s.created_at AS session_created_at,
                      u.id, u.email, u.name, u.avatar_url, u.created_at, u.updated_at
               FROM sessions s
               JOIN users u ON u.id = s.user_id
               WHERE s.token_hash = ? AND s.expires_at > ?
               LIMIT 1""",
            (token_hash, to_db_timestamp(now))
        ).fetchone()
        if not row:
            return None
        session = Session.from_row({
            "id": row["session_id"],
            "user_id": row["user_id"],
            "token_hash": row["token_hash"],
            "expires_at": row["expires_at"],
            "created_at": row["session_created_at"],
        })
        return session, User.from_row(row)

    def delete_session_by_token_hash(self, token_hash: str) -> int:
        cur = self.conn.execute("DELETE FROM sessions WHERE token_hash = ?", (token_hash,))
        return cur.rowcount

    def delete_expired_sessions(self, now: datetime) -> int:
        cur = self.conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (to_db_timestamp(now),))
        return cur.rowcount

    def delete_all_user_sessions(self, user_id: int) -> int:
        cur = self.conn.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
        return cur.rowcount


def _is_unavailable(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "unable to open" in message or "disk i/o" in message


class AccountStore:
    """Async unit-of-work facade over the connection pool.

    ``run(work)`` checks out a connection, runs ``work(db)`` inside one
    transaction on a worker thread and returns its result.
    """

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    async def run(self, work: Callable[[Database], T]) -> T:
        return await run_in_threadpool(self.run_sync, work)

    def run_sync(self, work: Callable[[Database], T]) -> T:
        with self.pool.connection() as conn:
            db = Database(conn)
            try:
                with db.transaction():
                    return work(db)
            except sqlite3.IntegrityError as e:
                logger.warning(f"Constraint violation, transaction rolled back: {e}")
                raise ConflictError("Resource already exists") from e
            except sqlite3.OperationalError as e:
                if _is_unavailable(e):
                    logger.error(f"Database unavailable: {e}")
                    raise ServiceUnavailableError("Database unavailable") from e
                raise

from __future__ import annotations

import os
import sqlite3
import logging

from . import config

log = logging.getLogger("animebot.db")


# ----------------------------
# Path resolution
# ----------------------------
def _resolved_db_path() -> str:
    env = os.environ.get("BOT_DB_PATH")
    if env:
        return os.path.abspath(env)
    return os.path.abspath(config.BOT_DB_PATH)


# ----------------------------
# Helpers
# ----------------------------
def _table_exists(con: sqlite3.Connection, name: str) -> bool:
    cur = con.cursor()
    row = cur.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name=? LIMIT 1", (name,)
    ).fetchone()
    return bool(row)


# ----------------------------
# Freshness guard
# ----------------------------
def _any_rows(con: sqlite3.Connection, table: str) -> bool:
    if not _table_exists(con, table):
        return False
    cur = con.cursor()
    try:
        n = cur.execute(f"SELECT 1 FROM {table} LIMIT 1").fetchone()
        return bool(n)
    except sqlite3.Error:
        return False


def _is_fresh_db(path: str) -> bool:
    if not os.path.exists(path):
        return True
    try:
        con = sqlite3.connect(path, timeout=5)
        try:
            return not _any_rows(con, "subscribers")
        finally:
            con.close()
    except sqlite3.Error:
        return True


# ----------------------------
# Public: connect() / ensure_db()
# ----------------------------
def connect() -> sqlite3.Connection:
    path = _resolved_db_path()
    if os.getenv("DB_REQUIRE_PERSISTENCE") == "1" and _is_fresh_db(path):
        raise RuntimeError(
            f"Refusing to start on fresh DB: {path}. "
            "Set BOT_DB_PATH to a persistent location (e.g. a Docker volume) "
            "or unset DB_REQUIRE_PERSISTENCE."
        )

    con = sqlite3.connect(path, timeout=5)
    con.execute("PRAGMA foreign_keys=ON")
    con.execute("PRAGMA journal_mode=WAL")
    con.execute("PRAGMA synchronous=NORMAL")
    con.execute("PRAGMA busy_timeout=3000")
    return con


def ensure_db() -> None:
    """
    Idempotently create/upgrade the subscription tables.
    Safe to call on every startup.
    """
    path = _resolved_db_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with sqlite3.connect(path, timeout=5) as con:
        cur = con.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        journal = cur.execute("PRAGMA journal_mode").fetchone()[0]
        cur.execute("PRAGMA synchronous=NORMAL")
        cur.execute("PRAGMA foreign_keys=ON")
        cur.execute("PRAGMA busy_timeout=3000")

        try:
            size = os.stat(path).st_size
        except FileNotFoundError:
            size = 0
        log.info("db.open path=%s size=%d journal=%s", path, size, journal)

        # ========== subscribers ==========
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS subscribers (
                user_id                 TEXT NOT NULL,
                guild_id                TEXT NOT NULL,
                notification_channel_id TEXT,
                command_channel_id      TEXT,
                created_at              TEXT NOT NULL,
                PRIMARY KEY (user_id, guild_id)
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_subscribers_guild ON subscribers(guild_id)"
        )

        # ========== watch sets ==========
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS anime_watches (
                user_id         TEXT NOT NULL,
                guild_id        TEXT NOT NULL,
                title           TEXT NOT NULL,
                title_key       TEXT NOT NULL,
                current_episode INTEGER NOT NULL DEFAULT 0,
                UNIQUE (user_id, guild_id, title_key),
                FOREIGN KEY (user_id, guild_id)
                    REFERENCES subscribers(user_id, guild_id) ON DELETE CASCADE
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS manga_watches (
                user_id         TEXT NOT NULL,
                guild_id        TEXT NOT NULL,
                title           TEXT NOT NULL,
                title_key       TEXT NOT NULL,
                current_chapter REAL NOT NULL DEFAULT 0,
                UNIQUE (user_id, guild_id, title_key),
                FOREIGN KEY (user_id, guild_id)
                    REFERENCES subscribers(user_id, guild_id) ON DELETE CASCADE
            )
            """
        )
        con.commit()


__all__ = ["connect", "ensure_db"]

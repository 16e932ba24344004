from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

from ..db import connect
from .common import normalize_title, now_iso_utc as _now_iso_utc

WatchKind = Literal["anime", "manga"]
ChannelKind = Literal["notification", "command"]

WATCH_KINDS: Tuple[WatchKind, ...] = ("anime", "manga")

# kind -> (table, progress column)
_WATCH_TABLES: Dict[str, Tuple[str, str]] = {
    "anime": ("anime_watches", "current_episode"),
    "manga": ("manga_watches", "current_chapter"),
}

_CHANNEL_COLUMNS: Dict[str, str] = {
    "notification": "notification_channel_id",
    "command": "command_channel_id",
}


@dataclass
class Watch:
    title: str
    progress: float = 0

    @property
    def key(self) -> str:
        return normalize_title(self.title)


@dataclass
class SubscriberRecord:
    user_id: str
    guild_id: str
    anime: List[Watch] = field(default_factory=list)
    manga: List[Watch] = field(default_factory=list)
    notification_channel_id: Optional[str] = None
    command_channel_id: Optional[str] = None

    def watches(self, kind: WatchKind) -> List[Watch]:
        if kind == "anime":
            return self.anime
        if kind == "manga":
            return self.manga
        raise ValueError(f"unknown watch kind: {kind!r}")

    def find_watch(self, kind: WatchKind, title: str) -> Optional[Watch]:
        key = normalize_title(title)
        for w in self.watches(kind):
            if w.key == key:
                return w
        return None

    @property
    def delivery_channel_id(self) -> Optional[str]:
        """Where notifications go: notification channel, else command channel."""
        return self.notification_channel_id or self.command_channel_id


def _table(kind: WatchKind) -> Tuple[str, str]:
    try:
        return _WATCH_TABLES[kind]
    except KeyError:
        raise ValueError(f"unknown watch kind: {kind!r}") from None


def _coerce_progress(kind: WatchKind, value) -> float | int:
    if value is None:
        return 0
    return int(value) if kind == "anime" else float(value)


def _load_watches(
    con: sqlite3.Connection, kind: WatchKind, where: str = "", params: tuple = ()
) -> Dict[Tuple[str, str], List[Watch]]:
    table, col = _table(kind)
    rows = con.execute(
        f"SELECT user_id, guild_id, title, {col} FROM {table} {where} ORDER BY rowid ASC",
        params,
    ).fetchall()
    out: Dict[Tuple[str, str], List[Watch]] = {}
    for uid, gid, title, progress in rows:
        out.setdefault((str(uid), str(gid)), []).append(
            Watch(title=title, progress=_coerce_progress(kind, progress))
        )
    return out


def _load_record(con: sqlite3.Connection, user_id: str, guild_id: str) -> Optional[SubscriberRecord]:
    row = con.execute(
        """
        SELECT notification_channel_id, command_channel_id
        FROM subscribers WHERE user_id=? AND guild_id=?
        """,
        (user_id, guild_id),
    ).fetchone()
    if not row:
        return None
    where = "WHERE user_id=? AND guild_id=?"
    anime = _load_watches(con, "anime", where, (user_id, guild_id))
    manga = _load_watches(con, "manga", where, (user_id, guild_id))
    return SubscriberRecord(
        user_id=user_id,
        guild_id=guild_id,
        anime=anime.get((user_id, guild_id), []),
        manga=manga.get((user_id, guild_id), []),
        notification_channel_id=row[0],
        command_channel_id=row[1],
    )


def get(user_id: str | int, guild_id: str | int) -> Optional[SubscriberRecord]:
    with connect() as con:
        return _load_record(con, str(user_id), str(guild_id))


def find_or_create(user_id: str | int, guild_id: str | int) -> SubscriberRecord:
    """
    Return the record for (user, guild), creating it with empty watch sets if absent.
    A new record inherits the channel configuration of an existing record in the same guild.
    """
    uid, gid = str(user_id), str(guild_id)
    with connect() as con:
        rec = _load_record(con, uid, gid)
        if rec is not None:
            return rec

        sibling = con.execute(
            """
            SELECT notification_channel_id, command_channel_id
            FROM subscribers
            WHERE guild_id=?
              AND (notification_channel_id IS NOT NULL OR command_channel_id IS NOT NULL)
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (gid,),
        ).fetchone()
        notif, cmd = sibling if sibling else (None, None)

        con.execute(
            """
            INSERT INTO subscribers (user_id, guild_id, notification_channel_id, command_channel_id, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, guild_id) DO NOTHING
            """,
            (uid, gid, notif, cmd, _now_iso_utc()),
        )
        con.commit()
        return _load_record(con, uid, gid)  # type: ignore[return-value]


def list_all() -> List[SubscriberRecord]:
    """Full snapshot of every subscriber with both watch sets."""
    with connect() as con:
        rows = con.execute(
            """
            SELECT user_id, guild_id, notification_channel_id, command_channel_id
            FROM subscribers ORDER BY created_at ASC, rowid ASC
            """
        ).fetchall()
        anime = _load_watches(con, "anime")
        manga = _load_watches(con, "manga")

    out: List[SubscriberRecord] = []
    for uid, gid, notif, cmd in rows:
        key = (str(uid), str(gid))
        out.append(
            SubscriberRecord(
                user_id=key[0],
                guild_id=key[1],
                anime=anime.get(key, []),
                manga=manga.get(key, []),
                notification_channel_id=notif,
                command_channel_id=cmd,
            )
        )
    return out


def add_watch(record: SubscriberRecord, kind: WatchKind, title: str, initial_progress: float | int = 0) -> bool:
    """Insert a watch entry. Returns True if added, False if the title is already watched."""
    table, col = _table(kind)
    title = (title or "").strip()
    key = normalize_title(title)
    if not key:
        raise ValueError("title must not be empty")
    if record.find_watch(kind, title) is not None:
        return False

    progress = _coerce_progress(kind, max(initial_progress or 0, 0))
    with connect() as con:
        cur = con.execute(
            f"""
            INSERT INTO {table} (user_id, guild_id, title, title_key, {col})
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, guild_id, title_key) DO NOTHING
            """,
            (record.user_id, record.guild_id, title, key, progress),
        )
        con.commit()
        inserted = cur.rowcount > 0
    if inserted:
        record.watches(kind).append(Watch(title=title, progress=progress))
    return inserted


def remove_watch(record: SubscriberRecord, kind: WatchKind, title: str) -> bool:
    """Delete a watch entry by case-insensitive title. False if it wasn't there."""
    table, _col = _table(kind)
    key = normalize_title(title)
    with connect() as con:
        cur = con.execute(
            f"DELETE FROM {table} WHERE user_id=? AND guild_id=? AND title_key=?",
            (record.user_id, record.guild_id, key),
        )
        con.commit()
        removed = cur.rowcount > 0
    watches = record.watches(kind)
    watches[:] = [w for w in watches if w.key != key]
    return removed


def set_channel(record: SubscriberRecord, kind: ChannelKind, channel_id: str | int | None) -> None:
    try:
        column = _CHANNEL_COLUMNS[kind]
    except KeyError:
        raise ValueError(f"unknown channel kind: {kind!r}") from None
    value = str(channel_id) if channel_id is not None else None
    with connect() as con:
        con.execute(
            f"UPDATE subscribers SET {column}=? WHERE user_id=? AND guild_id=?",
            (value, record.user_id, record.guild_id),
        )
        con.commit()
    setattr(record, column, value)


def save(record: SubscriberRecord) -> None:
    """
    Upsert the whole record in one transaction. Watch rows not present in the
    record are dropped; stored progress never moves backwards.
    """
    with connect() as con:
        con.execute(
            """
            INSERT INTO subscribers (user_id, guild_id, notification_channel_id, command_channel_id, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, guild_id) DO UPDATE SET
              notification_channel_id=excluded.notification_channel_id,
              command_channel_id=excluded.command_channel_id
            """,
            (
                record.user_id,
                record.guild_id,
                record.notification_channel_id,
                record.command_channel_id,
                _now_iso_utc(),
            ),
        )
        for kind in WATCH_KINDS:
            table, col = _table(kind)
            watches = record.watches(kind)
            keys = [w.key for w in watches]
            if keys:
                marks = ",".join("?" for _ in keys)
                con.execute(
                    f"DELETE FROM {table} WHERE user_id=? AND guild_id=? AND title_key NOT IN ({marks})",
                    (record.user_id, record.guild_id, *keys),
                )
            else:
                con.execute(
                    f"DELETE FROM {table} WHERE user_id=? AND guild_id=?",
                    (record.user_id, record.guild_id),
                )
            for w in watches:
                con.execute(
                    f"""
                    INSERT INTO {table} (user_id, guild_id, title, title_key, {col})
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, guild_id, title_key) DO UPDATE SET
                      title=excluded.title,
                      {col}=MAX({col}, excluded.{col})
                    """,
                    (record.user_id, record.guild_id, w.title, w.key, _coerce_progress(kind, w.progress)),
                )
        con.commit()


def advance_progress(
    user_id: str, guild_id: str, kind: WatchKind, title: str, progress: float | int
) -> bool:
    """
    Ratchet a single watch entry forward. Only touches that row, so watch-set
    edits made concurrently by a command handler are never overwritten.
    Returns True if the stored value moved.
    """
    table, col = _table(kind)
    value = _coerce_progress(kind, progress)
    with connect() as con:
        cur = con.execute(
            f"""
            UPDATE {table} SET {col}=?
            WHERE user_id=? AND guild_id=? AND title_key=? AND {col} < ?
            """,
            (value, str(user_id), str(guild_id), normalize_title(title), value),
        )
        con.commit()
        return cur.rowcount > 0


__all__ = [
    "ChannelKind",
    "SubscriberRecord",
    "WATCH_KINDS",
    "Watch",
    "WatchKind",
    "add_watch",
    "advance_progress",
    "find_or_create",
    "get",
    "list_all",
    "remove_watch",
    "save",
    "set_channel",
]

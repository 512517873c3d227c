# row-change notifications, read from the row_changes log filled by triggers.sql
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Literal, Optional

import aiosqlite

from db.database import connect
from utils import settings
from utils.logger import get_logger

_logger = get_logger(__name__)

ChangeType = Literal["insert", "update", "delete"]


@dataclass(frozen=True)
class ChangeEvent:
    seq: int
    table: str
    type: ChangeType
    pk: int
    owner: Optional[int]
    row: Dict[str, Any] = field(default_factory=dict)


class ChangeFeed:
    """
    Subscription to insert/update/delete events on one table, optionally
    limited to rows owned by one user.

    The cursor starts at the end of the log, so only changes made after
    start() are delivered. Every session (process) polls the same log, which
    is what lets one admin see another admin's status changes.
    """

    def __init__(
        self,
        table: str,
        owner: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        self.table = table
        self.owner = owner
        self.poll_interval = (
            settings.REALTIME_POLL_SECONDS if poll_interval is None else poll_interval
        )
        self._last_seq: Optional[int] = None

    async def start(self) -> int:
        async with connect() as conn:
            cur = await conn.execute("SELECT COALESCE(MAX(seq), 0) FROM row_changes;")
            row = await cur.fetchone()
            await cur.close()
        self._last_seq = int(row[0])
        _logger.debug(f"Feed on '{self.table}' (owner={self.owner}) from seq {self._last_seq}")
        return self._last_seq

    async def poll(self) -> List[ChangeEvent]:
        """Events recorded since the previous poll, oldest first."""
        if self._last_seq is None:
            await self.start()
            return []

        query = "SELECT seq, tbl, op, pk, owner, payload FROM row_changes WHERE seq > ? AND tbl = ?"
        params: list = [self._last_seq, self.table]
        if self.owner is not None:
            query += " AND owner = ?"
            params.append(self.owner)
        query += " ORDER BY seq;"

        async with connect() as conn:
            cur = await conn.execute(query, tuple(params))
            rows = await cur.fetchall()
            await cur.close()
        if not rows:
            return []

        self._last_seq = rows[-1]["seq"]
        return [
            ChangeEvent(
                seq=row["seq"],
                table=row["tbl"],
                type=row["op"],
                pk=row["pk"],
                owner=row["owner"],
                row=json.loads(row["payload"] or "{}"),
            )
            for row in rows
        ]

    async def listen(self) -> AsyncIterator[ChangeEvent]:
        """Yield events as they arrive; runs until the consuming task is cancelled."""
        if self._last_seq is None:
            await self.start()
        while True:
            try:
                events = await self.poll()
            except aiosqlite.Error as e:
                _logger.warning(f"Feed on '{self.table}' failed to poll: {e}")
                events = []
            for event in events:
                yield event
            await asyncio.sleep(self.poll_interval)

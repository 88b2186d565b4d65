from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
import json
import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import WebSocket

from stocksim.schemas import PriceUpdated


log = logging.getLogger(__name__)


@dataclass
class _Client:
    ws: WebSocket
    # None -> every stock
    stock_ids: Optional[frozenset[int]] = None

    def wants(self, stock_id: int) -> bool:
        return self.stock_ids is None or stock_id in self.stock_ids


class PriceFeed:
    """
    Websocket price subscriptions.

    A client starts out watching every stock and can narrow that to a set of stock
    ids. Each engine tick becomes at most one message per client holding only the
    price updates it watches. Errors go to everyone.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._clients: Dict[int, _Client] = {}

    async def client_count(self) -> int:
        async with self._lock:
            return len(self._clients)

    async def attach(self, ws: WebSocket) -> int:
        await ws.accept()
        async with self._lock:
            self._clients[id(ws)] = _Client(ws)
            return len(self._clients)

    async def detach(self, ws: WebSocket) -> int:
        async with self._lock:
            self._clients.pop(id(ws), None)
            return len(self._clients)

    async def watch(self, ws: WebSocket, stock_ids: Optional[Iterable[int]]) -> Optional[list[int]]:
        """
        Narrows the client to `stock_ids`; None or an empty list means every stock.
        Returns the watched ids (None for all).
        """
        ids = frozenset(int(i) for i in stock_ids) if stock_ids else None
        async with self._lock:
            client = self._clients.get(id(ws))
            if client is None:
                raise KeyError("websocket is not attached")
            client.stock_ids = ids
        return sorted(ids) if ids is not None else None

    async def publish_tick(self, round_index: int, ts: str, updates: Iterable[PriceUpdated]) -> None:
        rows = [(u.stock_id, asdict(u)) for u in updates]
        async with self._lock:
            clients = list(self._clients.values())

        sends = []
        for c in clients:
            mine = [row for stock_id, row in rows if c.wants(stock_id)]
            if not mine:
                continue
            sends.append(
                self._deliver(c, {"type": "tick", "round": round_index, "ts": ts, "updates": mine})
            )
        if sends:
            await asyncio.gather(*sends)

    async def publish_error(self, ts: str, error: str, trace: str) -> None:
        async with self._lock:
            clients = list(self._clients.values())
        msg = {"type": "error", "ts": ts, "error": error, "trace": trace}
        await asyncio.gather(*[self._deliver(c, msg) for c in clients])

    async def _deliver(self, client: _Client, msg: dict[str, Any]) -> None:
        try:
            await client.ws.send_text(json.dumps(msg, ensure_ascii=False, default=str))
        except Exception as e:
            # a client that fails a send is dropped
            log.info("dropping ws client %s: %s", getattr(client.ws, "client", None), e)
            await self.detach(client.ws)

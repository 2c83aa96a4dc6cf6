"""
AgentAssist - 房間廣播路由
職責：記錄每條連線加入了哪些房間，並依事件種類將訊息分送給房間內的成員。
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """可接收 JSON 訊息的連線，例如 fastapi.WebSocket"""

    async def send_json(self, data: Any) -> None:
        ...


class ConnectionManager:
    """
    管理所有活躍的連線。
    """

    def __init__(self, on_drop: Optional[Callable[[str], None]] = None):
        self.active_connections: Dict[str, Connection] = {}
        # 送出失敗而移除連線時的通知，讓上層一併清除房間成員資格
        self.on_drop = on_drop

    def connect(self, client_id: str, connection: Connection):
        if client_id in self.active_connections:
            logger.warning("路由服務：客戶端 %s 重複連線，將以新連線取代", client_id)
        self.active_connections[client_id] = connection
        logger.info("路由服務：客戶端連線成功 - ID: %s", client_id)

    def disconnect(self, client_id: str, connection: Optional[Connection] = None) -> bool:
        """
        移除連線。指定 connection 時，只有它仍是該 ID 目前的連線才會移除，
        避免舊連線較晚結束時把重新連線的新連線一併移除。
        """
        if not self.owns(client_id, connection):
            logger.info("路由服務：客戶端 %s 的舊連線結束，保留目前的連線", client_id)
            return False
        if client_id in self.active_connections:
            del self.active_connections[client_id]
            logger.info("路由服務：客戶端離線 - ID: %s", client_id)
        return True

    def owns(self, client_id: str, connection: Optional[Connection]) -> bool:
        """connection 為 None、該 ID 已無連線，或 connection 就是目前的連線時為 True"""
        current = self.active_connections.get(client_id)
        return connection is None or current is None or current is connection

    def is_connected(self, client_id: str) -> bool:
        return client_id in self.active_connections

    async def send_personal_message(self, message: dict, client_id: str) -> bool:
        """送出訊息；連線不存在或送出失敗時回傳 False，失敗的連線會被移除。"""
        connection = self.active_connections.get(client_id)
        if connection is None:
            logger.debug("路由服務：找不到客戶端 ID %s，訊息未送出", client_id)
            return False
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.warning("路由服務：送出訊息給 %s 失敗，移除連線: %s", client_id, e)
            if self.disconnect(client_id, connection) and self.on_drop is not None:
                self.on_drop(client_id)
            return False


class RoomRouter:
    """
    管理廣播房間。房間 ID 為 conversation_id 或 voice-{session_id}。
    是否排除發送者由各事件自行決定，路由本身沒有預設行為。
    """

    def __init__(self):
        self.rooms: Dict[str, Set[str]] = defaultdict(set)
        self.connection_manager = ConnectionManager(on_drop=self._leave_all)
        # 每個房間一把鎖，確保同一房間的事件依到達順序送出
        self._locks: Dict[str, asyncio.Lock] = {}
        # 正在使用或等待各房間鎖的廣播數量；歸零前不移除鎖
        self._lock_users: Dict[str, int] = {}

    @staticmethod
    def envelope(event: str, payload: Any) -> dict:
        return {"type": event, "data": payload}

    # --- 連線 ---

    def connect(self, client_id: str, connection: Connection):
        self.connection_manager.connect(client_id, connection)

    def disconnect(
        self, client_id: str, connection: Optional[Connection] = None
    ) -> Optional[List[str]]:
        """
        中斷連線並離開所有房間，回傳原本所在的房間。
        connection 已被同 ID 的新連線取代時不做任何事，回傳 None。
        """
        if not self.connection_manager.disconnect(client_id, connection):
            return None
        return self._leave_all(client_id)

    def _leave_all(self, client_id: str) -> List[str]:
        left = [room_id for room_id, members in self.rooms.items() if client_id in members]
        for room_id in left:
            self.leave(client_id, room_id)
        return left

    # --- 房間 ---

    def join(self, client_id: str, room_id: str):
        self.rooms[room_id].add(client_id)
        logger.info("路由服務：客戶端 %s 已加入房間 %s", client_id, room_id)

    def leave(self, client_id: str, room_id: str):
        if room_id in self.rooms and client_id in self.rooms[room_id]:
            self.rooms[room_id].remove(client_id)
            logger.info("路由服務：客戶端 %s 已離開房間 %s", client_id, room_id)

            if not self.rooms[room_id]:
                self._remove_room(room_id)

    def clear_room(self, room_id: str):
        """將所有成員移出房間，之後的廣播不會再送達任何人。"""
        if room_id in self.rooms:
            self._remove_room(room_id)

    def _remove_room(self, room_id: str):
        del self.rooms[room_id]
        if not self._lock_users.get(room_id):
            self._locks.pop(room_id, None)
        logger.info("路由服務：房間 %s 已空，已被移除", room_id)

    def members(self, room_id: str) -> Set[str]:
        return set(self.rooms.get(room_id, ()))

    def rooms_of(self, client_id: str) -> List[str]:
        return [room_id for room_id, members in self.rooms.items() if client_id in members]

    # --- 訊息分送 ---

    async def broadcast(
        self,
        room_id: str,
        event: str,
        payload: Any,
        sender_id: Optional[str] = None,
        exclude_sender: bool = False,
        recipient_filter: Optional[Callable[[str], bool]] = None,
    ) -> int:
        """
        向房間內目前的成員廣播事件，回傳成功送達的數量。

        Args:
            room_id: 目標房間。
            event: 事件名稱。
            payload: 事件內容。
            sender_id: 發送者 ID。
            exclude_sender: 為 True 時不送回給發送者。
            recipient_filter: 額外的收件者篩選條件。
        """
        if room_id not in self.rooms:
            return 0

        message = self.envelope(event, payload)
        lock = self._locks.setdefault(room_id, asyncio.Lock())
        self._lock_users[room_id] = self._lock_users.get(room_id, 0) + 1
        try:
            async with lock:
                recipients = [
                    client_id
                    for client_id in sorted(self.rooms.get(room_id, ()))
                    if not (exclude_sender and client_id == sender_id)
                    and (recipient_filter is None or recipient_filter(client_id))
                ]
                delivered = 0
                for client_id in recipients:
                    if await self.connection_manager.send_personal_message(message, client_id):
                        delivered += 1
        finally:
            self._lock_users[room_id] -= 1
            if not self._lock_users[room_id]:
                del self._lock_users[room_id]
                if room_id not in self.rooms:
                    self._locks.pop(room_id, None)
        return delivered

    async def send_to(self, client_id: str, event: str, payload: Any) -> bool:
        return await self.connection_manager.send_personal_message(
            self.envelope(event, payload), client_id
        )

    async def broadcast_all(self, event: str, payload: Any) -> int:
        """向所有連線中的客戶端廣播，不論所在房間。"""
        message = self.envelope(event, payload)
        delivered = 0
        for client_id in list(self.connection_manager.active_connections):
            if await self.connection_manager.send_personal_message(message, client_id):
                delivered += 1
        return delivered

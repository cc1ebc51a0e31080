import threading
import time
from collections import OrderedDict
from logging import getLogger
from typing import Callable, Optional

logger = getLogger(__name__)


class SessionImageStore:
    """QR コード経由のスマホアップロード用の一時画像置き場。

    永続化はしない。エントリは ``ttl_seconds`` で失効し、``max_entries`` を
    超えると古いものから捨てる。アプリの lifespan で生成・破棄する。
    """

    def __init__(
        self,
        ttl_seconds: float = 600,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, tuple[float, str]]" = OrderedDict()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def put(self, session_id: str, data_url: str):
        with self._lock:
            self._purge_expired_locked()
            self._entries.pop(session_id, None)
            self._entries[session_id] = (self._clock() + self.ttl_seconds, data_url)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.info(f"セッション画像の上限を超えたため削除しました: {evicted}")

    def get(self, session_id: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            expires_at, data_url = entry
            if expires_at <= self._clock():
                del self._entries[session_id]
                return None
            return data_url

    def delete(self, session_id: str):
        with self._lock:
            self._entries.pop(session_id, None)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_locked()

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self):
        with self._lock:
            self._entries.clear()

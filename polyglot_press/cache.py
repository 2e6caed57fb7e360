# polyglot_press/cache.py
"""本模块提供进程内的翻译缓存，避免对相同的文本重复调用提供商。"""

import asyncio
import hashlib

from cachetools import LRUCache
from pydantic import BaseModel, Field


class CacheConfig(BaseModel):
    """缓存配置模型。"""

    maxsize: int = Field(default=500, gt=0)
    lock_pool_size: int = Field(
        default=1024, gt=0, description="用于并发写入的锁池大小"
    )


class TranslationCache:
    """
    一个以 (源文本, 源语言, 目标语言) 为键的、异步安全的 LRU 缓存。

    条目没有过期时间，只会被 LRU 淘汰或通过 `clear` 显式清空。
    同一键的并发写入以最后一次为准。
    """

    def __init__(self, config: CacheConfig | None = None):
        self.config = config or CacheConfig()
        self.cache: LRUCache[str, str] = LRUCache(maxsize=self.config.maxsize)
        self._lock_pool_size = self.config.lock_pool_size
        self._key_locks: list[asyncio.Lock] = [
            asyncio.Lock() for _ in range(self._lock_pool_size)
        ]
        self._global_lock = asyncio.Lock()

    @staticmethod
    def generate_cache_key(text: str, src_lang: str, dst_lang: str) -> str:
        """生成确定性的缓存键，原文只以 SHA-256 摘要的形式出现。"""
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"{src_lang or 'auto'}->{dst_lang}:{digest}"

    def _lock_for(self, key: str) -> asyncio.Lock:
        return self._key_locks[hash(key) % self._lock_pool_size]

    async def get(self, text: str, src_lang: str, dst_lang: str) -> str | None:
        key = self.generate_cache_key(text, src_lang, dst_lang)
        async with self._lock_for(key):
            return self.cache.get(key)

    async def set(self, text: str, src_lang: str, dst_lang: str, value: str) -> None:
        key = self.generate_cache_key(text, src_lang, dst_lang)
        async with self._lock_for(key):
            self.cache[key] = value

    async def clear(self) -> None:
        """清空整个缓存。"""
        async with self._global_lock:
            self._key_locks = [asyncio.Lock() for _ in range(self._lock_pool_size)]
            self.cache = LRUCache(maxsize=self.config.maxsize)

    def __len__(self) -> int:
        return len(self.cache)

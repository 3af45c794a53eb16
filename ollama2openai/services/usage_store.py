"""
用量统计存储模块

按别名累计 token 与请求次数。接口与实现分离，便于替换为 Redis 等实现。
实例在应用启动时创建并注入，不使用全局单例。
"""
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict

from ollama2openai.models.schemas import UsageRecord, UsageSnapshot


class UsageStore(ABC):
    """用量统计存储抽象接口"""

    @abstractmethod
    def record_completion(self, alias: str, prompt_tokens: int, completion_tokens: int) -> None:
        """记录一次聊天补全的用量"""

    @abstractmethod
    def record_embedding(self, alias: str, tokens: int) -> None:
        """记录一次向量化请求的用量"""

    @abstractmethod
    def snapshot(self) -> UsageSnapshot:
        """返回所有别名用量的副本"""

    @abstractmethod
    def reset(self) -> None:
        """清空统计"""


class InMemoryUsageStore(UsageStore):
    """
    内存用量统计实现

    特点：
    - 一把锁保护整个映射，写操作互斥，读取拿到的都是完整记录
    - 锁内没有 await，事件循环和线程中都可以直接调用
    - 进程重启后数据丢失
    """

    def __init__(self):
        self._usage: Dict[str, UsageRecord] = {}
        self._lock = threading.Lock()
        self.last_reset = datetime.now()

    def _get_or_create(self, alias: str) -> UsageRecord:
        record = self._usage.get(alias)
        if record is None:
            record = UsageRecord()
            self._usage[alias] = record
        return record

    def record_completion(self, alias: str, prompt_tokens: int, completion_tokens: int) -> None:
        with self._lock:
            record = self._get_or_create(alias)
            record.prompt_tokens += prompt_tokens
            record.completion_tokens += completion_tokens
            record.total_requests += 1

    def record_embedding(self, alias: str, tokens: int) -> None:
        with self._lock:
            record = self._get_or_create(alias)
            record.embedding_tokens += tokens
            record.embedding_requests += 1

    def snapshot(self) -> UsageSnapshot:
        with self._lock:
            return {alias: record.model_copy() for alias, record in self._usage.items()}

    def reset(self) -> None:
        with self._lock:
            self._usage = {}
            self.last_reset = datetime.now()

"""Snowflake-style ID generator for business IDs (order_id, reservation_id).

Several API replicas write orders and reservations concurrently, so each
process needs its own worker id. It comes from ID_WORKER_ID when the
deployment assigns one (StatefulSet ordinal, ECS task index), otherwise it is
hashed from hostname and pid. The app lifespan calls configure() once at
startup.

Orders get an "ORD" prefix so the id reads well on receipts and in the
gateway dashboard, where it is sent as the payment intent's receipt number.
"""

import logging
import os
import socket
import threading
import time
import zlib

logger = logging.getLogger(__name__)

_WORKER_BITS = 10
_SEQUENCE_BITS = 12
MAX_WORKER_ID = (1 << _WORKER_BITS) - 1


def worker_id_from_host(hostname: str | None = None, pid: int | None = None) -> int:
    host = hostname if hostname is not None else socket.gethostname()
    proc = pid if pid is not None else os.getpid()
    return zlib.crc32(f"{host}:{proc}".encode()) & MAX_WORKER_ID


class SnowflakeIdGenerator:
    """Layout (63 bits used):
      - 41 bits: milliseconds since 2024-01-01
      - 10 bits: worker id
      - 12 bits: per-millisecond sequence

    If the wall clock steps backwards the generator keeps issuing from the
    last millisecond it saw, so ids never repeat or go backwards.
    """

    _EPOCH_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z
    _MAX_SEQUENCE = (1 << _SEQUENCE_BITS) - 1

    def __init__(self, worker_id: int = 0) -> None:
        if not (0 <= worker_id <= MAX_WORKER_ID):
            raise ValueError(f"worker_id must be 0-{MAX_WORKER_ID}")
        self.worker_id = worker_id
        self._sequence = 0
        self._last_ms = -1
        self._lock = threading.Lock()

    def next_int(self) -> int:
        with self._lock:
            now_ms = max(self._current_ms(), self._last_ms)
            if now_ms == self._last_ms:
                self._sequence = (self._sequence + 1) & self._MAX_SEQUENCE
                if self._sequence == 0:
                    now_ms = self._wait_next_ms(now_ms)
            else:
                self._sequence = 0
            self._last_ms = now_ms
            return (
                ((now_ms - self._EPOCH_MS) << (_WORKER_BITS + _SEQUENCE_BITS))
                | (self.worker_id << _SEQUENCE_BITS)
                | self._sequence
            )

    def next_id(self, prefix: str = "") -> str:
        return f"{prefix}{self.next_int()}"

    def _current_ms(self) -> int:
        return int(time.time() * 1000)

    def _wait_next_ms(self, last_ms: int) -> int:
        now_ms = self._current_ms()
        while now_ms <= last_ms:
            time.sleep(0.0001)
            now_ms = self._current_ms()
        return now_ms


_default_generator = SnowflakeIdGenerator(worker_id_from_host())


def configure(worker_id: int | None) -> int:
    """Install the process-wide generator; returns the worker id in use."""
    global _default_generator
    if worker_id is None:
        worker_id = worker_id_from_host()
        logger.warning(
            "ID_WORKER_ID not set; derived worker id %d from host/pid, "
            "assign explicit ids when running more than a few replicas",
            worker_id,
        )
    _default_generator = SnowflakeIdGenerator(worker_id)
    return worker_id


def generate_id() -> str:
    return _default_generator.next_id()


def generate_order_id() -> str:
    """Order ids double as the gateway receipt reference: ORD<snowflake>."""
    return _default_generator.next_id("ORD")

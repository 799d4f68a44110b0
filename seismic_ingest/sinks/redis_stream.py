"""Relay de muestras a Redis Streams.

Suscriptor opcional del registry: cada muestra entregada se añade con
XADD al stream configurado para consumidores aguas abajo. No es
persistencia: el stream se recorta con MAXLEN aproximado.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Union

import orjson
import redis

from ..core.domain.sample import Sample

logger = logging.getLogger(__name__)

DEFAULT_URL = "redis://localhost:6379/0"
DEFAULT_STREAM = "seismic:samples"
DEFAULT_MAX_LEN = 10000


class RedisConnection:
    """Gestiona la conexión a Redis."""

    def __init__(self, url: Optional[str] = None):
        self._url = url or DEFAULT_URL
        self._client: Optional[redis.Redis] = None
        self._connected = False

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> bool:
        try:
            self._client = redis.Redis.from_url(
                self._url,
                decode_responses=False,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
            self._client.ping()
            self._connected = True
            logger.info("[REDIS] Connected: %s", self._url.split("@")[-1])
            return True
        except (redis.RedisError, ValueError) as e:
            # ValueError: REDIS_URL mal formada (from_url)
            self._client = None
            self._connected = False
            logger.warning("[REDIS] Connection failed: %s", e)
            return False

    def disconnect(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except redis.RedisError as e:
                logger.debug("[REDIS] Close error: %s", e)
        self._client = None
        self._connected = False


def sample_fields(sample: Sample) -> Dict[str, Union[str, float]]:
    """Campos XADD de una muestra (metadata serializada con orjson)."""
    return {
        "channel": sample.channel.value,
        "amplitude": float(sample.amplitude),
        "timestamp": sample.timestamp.isoformat(),
        "metadata": orjson.dumps(sample.metadata, default=str).decode(),
    }


class RedisStreamSubscriber:
    """Callback de suscripción que reenvía cada batch a un stream.

    Un batch de frame se escribe en un único pipeline para no pagar un
    round-trip por muestra.
    """

    def __init__(
        self,
        connection: RedisConnection,
        stream_name: str = DEFAULT_STREAM,
        max_len: int = DEFAULT_MAX_LEN,
    ):
        self._conn = connection
        self._stream = stream_name
        self._max_len = max_len
        self._published = 0
        self._failed = 0

    def __call__(self, batch: Union[Sample, Sequence[Sample]]) -> None:
        self.publish(batch)

    def publish(self, batch: Union[Sample, Sequence[Sample]]) -> int:
        """Publica un batch. Devuelve el número de muestras escritas."""
        samples = [batch] if isinstance(batch, Sample) else list(batch)
        if not samples or not self._conn.is_connected:
            return 0

        try:
            pipe = self._conn.client.pipeline(transaction=False)
            for sample in samples:
                pipe.xadd(
                    self._stream,
                    sample_fields(sample),
                    maxlen=self._max_len,
                    approximate=True,
                )
            pipe.execute()
        except redis.RedisError as e:
            self._failed += len(samples)
            logger.warning("[REDIS] Publish failed: %s", e)
            return 0

        self._published += len(samples)
        logger.debug("[REDIS] Published %d samples to %s", len(samples), self._stream)
        return len(samples)

    @property
    def stream_name(self) -> str:
        return self._stream

    @property
    def stats(self) -> dict:
        return {
            "stream": self._stream,
            "published": self._published,
            "failed": self._failed,
        }

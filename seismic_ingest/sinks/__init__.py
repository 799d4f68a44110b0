"""Sinks - relay opcional de muestras decodificadas."""

from .redis_stream import RedisConnection, RedisStreamSubscriber

__all__ = ["RedisConnection", "RedisStreamSubscriber"]

"""Registro de suscriptores y fan-out de lotes decodificados.

Garantías:
- Cada lote se entrega a TODOS los suscriptores registrados, en orden de
  registro, antes de que el transporte decodifique el siguiente frame.
- Un callback que lanza excepción se aísla: se loggea, se cuenta y se
  salta para ese lote; el resto recibe el lote igualmente.
- "Leer lista + entregar a cada uno" ocurre bajo un único lock, así que
  entregas concurrentes desde distintos transportes no corrompen la lista.
- Registrar/desregistrar durante una entrega en curso (desde el mismo
  hilo, dentro de un callback) aplica a partir del siguiente lote.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Union

from ..domain.sample import Sample
from ..monitoring.metrics import ACTIVE_SUBSCRIBERS, SUBSCRIBER_FAILURES

logger = logging.getLogger(__name__)

Batch = Union[Sample, Sequence[Sample]]
SubscriberCallback = Callable[[Batch], None]

_ids = itertools.count(1)


@dataclass(frozen=True)
class Subscription:
    """Identidad de un suscriptor registrado."""
    id: int
    name: str


@dataclass
class _Entry:
    subscription: Subscription
    callback: SubscriberCallback
    failures: int = field(default=0)


class SubscriptionRegistry:
    """Conjunto de callbacks activos con entrega aislada por suscriptor."""

    def __init__(self):
        self._entries: List[_Entry] = []
        # RLock: un callback puede (des)suscribir sin bloquearse a sí mismo
        self._lock = threading.RLock()
        self._deliveries = 0
        self._failures = 0

    def subscribe(self, callback: SubscriberCallback, name: Optional[str] = None) -> Subscription:
        """Registra un callback. Devuelve el handle para desregistrarlo."""
        if not callable(callback):
            raise TypeError("subscriber callback must be callable")
        sub = Subscription(
            id=next(_ids),
            name=name or getattr(callback, "__qualname__", repr(callback)),
        )
        with self._lock:
            self._entries = self._entries + [_Entry(sub, callback)]
        ACTIVE_SUBSCRIBERS.inc()
        logger.info("[REGISTRY] Subscribed %s (id=%d)", sub.name, sub.id)
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Desregistra un suscriptor. False si no estaba registrado."""
        with self._lock:
            remaining = [e for e in self._entries if e.subscription.id != subscription.id]
            removed = len(remaining) != len(self._entries)
            self._entries = remaining
        if removed:
            ACTIVE_SUBSCRIBERS.dec()
            logger.info("[REGISTRY] Unsubscribed %s (id=%d)", subscription.name, subscription.id)
        return removed

    def unsubscribe_all(self) -> int:
        """Elimina todos los suscriptores (desconexión / teardown)."""
        with self._lock:
            count = len(self._entries)
            self._entries = []
        if count:
            ACTIVE_SUBSCRIBERS.dec(count)
            logger.info("[REGISTRY] Unsubscribed all (%d)", count)
        return count

    def deliver(self, batch: Batch) -> int:
        """Entrega un lote a todos los suscriptores.

        Returns:
            Número de suscriptores que lo recibieron sin error
        """
        with self._lock:
            # snapshot: cambios durante la entrega aplican al siguiente lote
            entries = self._entries
            ok = 0
            for entry in entries:
                try:
                    entry.callback(batch)
                    ok += 1
                except Exception as e:
                    entry.failures += 1
                    self._failures += 1
                    SUBSCRIBER_FAILURES.labels(subscriber=entry.subscription.name).inc()
                    logger.exception(
                        "[REGISTRY] Subscriber %s failed: %s", entry.subscription.name, e,
                    )
            self._deliveries += 1
            return ok

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def subscriptions(self) -> List[Subscription]:
        with self._lock:
            return [e.subscription for e in self._entries]

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "subscribers": len(self._entries),
                "deliveries": self._deliveries,
                "subscriber_failures": self._failures,
            }

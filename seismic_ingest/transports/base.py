"""Transport - Interface base para los transportes de ingesta.

Define el contrato común de Push (paho-mqtt) y Byte-Stream (pyserial):
ninguna operación lanza excepciones fuera del adaptador, todas devuelven
un TransportResult con flag de éxito y descripción del error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class TransportState(Enum):
    """Ciclo de vida: IDLE → OPEN → STREAMING → CLOSED (terminal)."""
    IDLE = "idle"
    OPEN = "open"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass(frozen=True)
class TransportResult:
    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "TransportResult":
        return cls(True, None)

    @classmethod
    def fail(cls, error: str) -> "TransportResult":
        return cls(False, error)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "error": self.error}


@dataclass(frozen=True)
class ReadResult:
    """Resultado de una lectura del stream.

    text vacío con done=False significa timeout sin datos.
    """
    text: str = ""
    done: bool = False
    error: Optional[str] = None


class Transport(ABC):
    """Interface común para todos los transportes."""

    @abstractmethod
    def open(self, *args: Any, **kwargs: Any) -> TransportResult:
        """Abre la conexión."""

    @abstractmethod
    def write(self, data: Any) -> TransportResult:
        """Envía una unidad ya codificada. Atómica respecto a otros writers."""

    @abstractmethod
    def close(self) -> TransportResult:
        """Cierra la conexión y libera recursos."""

    @property
    @abstractmethod
    def state(self) -> TransportState:
        """Estado actual del ciclo de vida."""

    @property
    @abstractmethod
    def transport_name(self) -> str:
        """Nombre del transporte: push, serial."""

    @property
    def is_open(self) -> bool:
        return self.state in (TransportState.OPEN, TransportState.STREAMING)

    @property
    def stats(self) -> Dict[str, Any]:
        """Estadísticas del transporte."""
        return {}


class StreamReader(ABC):
    """Handle de lectura exclusivo sobre un transporte de bytes."""

    @abstractmethod
    def read(self) -> ReadResult:
        """Siguiente chunk de texto; bloquea como mucho el timeout de lectura."""

    @abstractmethod
    def cancel(self) -> None:
        """La siguiente lectura devuelve done=True. Idempotente."""

    @abstractmethod
    def release(self) -> bool:
        """Libera el handle. True solo la primera vez."""

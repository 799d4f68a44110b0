"""Excepciones del pipeline de ingesta sísmica."""

from __future__ import annotations


class IngestError(Exception):
    """Base de todos los errores del pipeline."""


class FrameError(IngestError):
    """Error a nivel de frame: el frame se descarta, el loop continúa.

    Se reporta al callback de error junto con el texto crudo.
    """

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class MalformedEnvelopeError(FrameError):
    """JSON inválido o envelope con payload que no valida."""


class OrphanChannelMarkerError(FrameError):
    """Marcador Y/Z sin un canal X previo."""


class MalformedPrefixError(FrameError):
    """Primer campo con forma de prefijo T/H/V que no se puede parsear."""


class LineTooLongError(FrameError):
    """Línea parcial que supera el tamaño máximo del buffer."""

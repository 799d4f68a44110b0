from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_TRUTHY = ("true", "1", "yes", "on")


def _default_env_file() -> str:
    repo_root = Path(__file__).resolve().parents[2]
    return str(repo_root / ".env")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    push_enabled: bool
    push_host: str
    push_port: int
    push_transport: str
    push_path: str
    push_topic_in: str
    push_topic_out: str
    push_username: Optional[str]
    push_password: Optional[str]

    serial_enabled: bool
    serial_port: Optional[str]
    serial_baud: int
    serial_rts: bool
    serial_dtr: bool
    max_line_length: int

    sample_step_ms: float
    dispatcher_queue_size: int

    redis_enabled: bool
    redis_url: str
    redis_stream: str


def get_settings() -> Settings:
    # Env file opcional; las variables reales del entorno tienen prioridad.
    env_file = os.getenv("SEISMIC_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        push_enabled=_flag("FF_PUSH_TRANSPORT_ENABLED", "true"),
        push_host=os.getenv("PUSH_BROKER_HOST", "localhost"),
        push_port=int(os.getenv("PUSH_BROKER_PORT", "5001")),
        # websockets | tcp
        push_transport=os.getenv("PUSH_TRANSPORT", "websockets"),
        push_path=os.getenv("PUSH_WS_PATH", "/ws"),
        push_topic_in=os.getenv("PUSH_TOPIC_IN", "seismic/+/data"),
        push_topic_out=os.getenv("PUSH_TOPIC_OUT", "seismic/ingest/data"),
        push_username=os.getenv("PUSH_USERNAME") or None,
        push_password=os.getenv("PUSH_PASSWORD") or None,
        serial_enabled=_flag("FF_SERIAL_TRANSPORT_ENABLED", "false"),
        serial_port=os.getenv("SERIAL_PORT") or None,
        serial_baud=int(os.getenv("SERIAL_BAUD", "115200")),
        serial_rts=_flag("SERIAL_RTS", "true"),
        serial_dtr=_flag("SERIAL_DTR", "true"),
        max_line_length=int(os.getenv("SERIAL_MAX_LINE_LENGTH", "65536")),
        sample_step_ms=float(os.getenv("SEISMIC_SAMPLE_STEP_MS", "10")),
        dispatcher_queue_size=int(os.getenv("PUSH_QUEUE_SIZE", "1000")),
        redis_enabled=_flag("FF_REDIS_SINK_ENABLED", "false"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        redis_stream=os.getenv("REDIS_STREAM", "seismic:samples"),
    )

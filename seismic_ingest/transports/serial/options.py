"""Opciones de apertura del puerto serie.

Por defecto el control de flujo está deshabilitado para que RTS/DTR no
se conmuten solos (muchas placas se resetean con DTR). Los estados de
RTS/DTR se fijan una sola vez tras abrir el puerto.

Acepta nombres snake_case o los camelCase del cliente web:
{"baudRate": 115200, "dataBits": 8, "stopBits": 1, "parity": "none",
 "flowControl": "none", "rtsState": true, "dtrState": true}
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

import serial
from pydantic import BaseModel, Field, validator

DATA_BITS = {7: serial.SEVENBITS, 8: serial.EIGHTBITS}
STOP_BITS = {1: serial.STOPBITS_ONE, 2: serial.STOPBITS_TWO}
PARITIES = {"none": serial.PARITY_NONE, "even": serial.PARITY_EVEN, "odd": serial.PARITY_ODD}
FLOW_CONTROLS = ("none", "hardware")


class SerialOptions(BaseModel):
    """Parámetros de línea. Combinaciones no soportadas fallan al abrir."""

    bit_rate: int = Field(default=115200, alias="baudRate", gt=0)
    data_bits: int = Field(default=8, alias="dataBits")
    stop_bits: int = Field(default=1, alias="stopBits")
    parity: str = "none"
    flow_control: str = Field(default="none", alias="flowControl")
    rts_line_state: bool = Field(default=True, alias="rtsState")
    dtr_line_state: bool = Field(default=True, alias="dtrState")
    read_timeout: float = Field(default=0.1, alias="readTimeout", gt=0)
    buffer_size: int = Field(default=255, alias="bufferSize", gt=0)

    class Config:
        populate_by_name = True
        extra = "forbid"

    @validator("data_bits")
    def validate_data_bits(cls, v):
        if v not in DATA_BITS:
            raise ValueError(f"dataBits must be one of {sorted(DATA_BITS)}")
        return v

    @validator("stop_bits")
    def validate_stop_bits(cls, v):
        if v not in STOP_BITS:
            raise ValueError(f"stopBits must be one of {sorted(STOP_BITS)}")
        return v

    @validator("parity")
    def validate_parity(cls, v):
        v = v.strip().lower()
        if v not in PARITIES:
            raise ValueError(f"parity must be one of {sorted(PARITIES)}")
        return v

    @validator("flow_control")
    def validate_flow_control(cls, v):
        v = v.strip().lower()
        if v not in FLOW_CONTROLS:
            raise ValueError(f"flowControl must be one of {list(FLOW_CONTROLS)}")
        return v

    @classmethod
    def from_any(cls, options: Union[None, "SerialOptions", Mapping[str, Any]]) -> "SerialOptions":
        """Normaliza None / dict / SerialOptions.

        Raises:
            pydantic.ValidationError: opciones no soportadas
        """
        if options is None:
            return cls()
        if isinstance(options, SerialOptions):
            return options
        return cls(**dict(options))

    def apply(self, port: "serial.SerialBase") -> None:
        """Configura un puerto aún cerrado."""
        port.baudrate = self.bit_rate
        port.bytesize = DATA_BITS[self.data_bits]
        port.stopbits = STOP_BITS[self.stop_bits]
        port.parity = PARITIES[self.parity]
        port.rtscts = self.flow_control == "hardware"
        port.dsrdtr = False
        port.xonxoff = False
        port.timeout = self.read_timeout
        port.write_timeout = None

    def summary(self, port_name: Optional[str] = None) -> str:
        return (
            f"{port_name or '?'} {self.bit_rate} {self.data_bits}"
            f"{self.parity[0].upper()}{self.stop_bits} flow={self.flow_control}"
        )

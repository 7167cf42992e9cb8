"""Motor state and per-joint actuator data."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from dmjoint.protocol import LimitParam, MotorType, limit_for


def _f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


@dataclass
class Motor:
    """One motor on a CAN bus, with its latest feedback and register cache."""

    motor_type: MotorType
    slave_id: int
    master_id: int
    position: float = field(default=0.0, init=False)
    velocity: float = field(default=0.0, init=False)
    tau: float = field(default=0.0, init=False)
    limit: LimitParam = field(init=False)
    _params: dict[int, float | int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.motor_type = MotorType(self.motor_type)
        self.limit = limit_for(self.motor_type)

    def receive_data(self, q: float, dq: float, tau: float) -> None:
        """Store the latest position, velocity and torque feedback."""
        self.position = _f32(q)
        self.velocity = _f32(dq)
        self.tau = _f32(tau)

    def set_param(self, key: int, value: float | int) -> None:
        """Cache a register value; ints are stored as uint32, floats as float32."""
        if isinstance(value, bool):
            value = int(value)
        if isinstance(value, int):
            if not 0 <= value <= 0xFFFFFFFF:
                raise ValueError(f"uint32 register value out of range: {value}")
            self._params[key] = value
        else:
            self._params[key] = _f32(float(value))

    def get_param_as_float(self, key: int) -> float:
        """Return a cached float register, or 0.0 when absent or integer-valued."""
        value = self._params.get(key)
        return value if isinstance(value, float) else 0.0

    def get_param_as_uint32(self, key: int) -> int:
        """Return a cached integer register, or 0 when absent or float-valued."""
        value = self._params.get(key)
        return value if isinstance(value, int) else 0

    def has_param(self, key: int) -> bool:
        """Tell whether a register value has been cached."""
        return key in self._params


@dataclass
class ActuatorData:
    """Configuration, state and commands of one joint actuator."""

    name: str = ""
    motor_type: MotorType = MotorType.DM4310
    can_id: int = 0
    mst_id: int = 0
    pos: float = 0.0
    vel: float = 0.0
    effort: float = 0.0
    cmd_pos: float = 0.0
    cmd_vel: float = 0.0
    cmd_effort: float = 0.0
    kp: float = 0.0
    kd: float = 0.0

    def __post_init__(self) -> None:
        self.motor_type = MotorType(self.motor_type)
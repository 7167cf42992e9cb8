"""Wire format and numeric encoding for Damiao motors behind a USB-to-CAN adapter."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

POS_MODE = 0x100
SPEED_MODE = 0x200
POSI_MODE = 0x300
BROADCAST_ID = 0x7FF
MAX_RETRIES = 20
RETRY_INTERVAL = 0.05  # seconds

CMD_ENABLE = 0xFC
CMD_DISABLE = 0xFD
CMD_SET_ZERO = 0xFE

KP_MIN, KP_MAX = 0.0, 500.0
KD_MIN, KD_MAX = 0.0, 5.0


class MotorType(IntEnum):
    """Supported motor models."""

    DM4310 = 0
    DM4310_48V = 1
    DM4340 = 2
    DM4340_48V = 3
    DM6006 = 4
    DM8006 = 5
    DM8009 = 6
    DM10010L = 7
    DM10010 = 8
    DMH3510 = 9
    DMH6215 = 10
    DMG6220 = 11


class ControlMode(IntEnum):
    """Control modes a motor can be switched to."""

    MIT = 1
    POS_VEL = 2
    VEL = 3
    POS_FORCE = 4


class Register(IntEnum):
    """Motor register identifiers."""

    UV_VALUE = 0
    KT_VALUE = 1
    OT_VALUE = 2
    OC_VALUE = 3
    ACC = 4
    DEC = 5
    MAX_SPD = 6
    MST_ID = 7
    ESC_ID = 8
    TIMEOUT = 9
    CTRL_MODE = 10
    DAMP = 11
    INERTIA = 12
    HW_VER = 13
    SW_VER = 14
    SN = 15
    NPP = 16
    RS = 17
    LS = 18
    FLUX = 19
    GR = 20
    PMAX = 21
    VMAX = 22
    TMAX = 23
    I_BW = 24
    KP_ASR = 25
    KI_ASR = 26
    KP_APR = 27
    KI_APR = 28
    OV_VALUE = 29
    GREF = 30
    DETA = 31
    V_BW = 32
    IQ_C1 = 33
    VL_C1 = 34
    CAN_BR = 35
    SUB_VER = 36
    U_OFF = 50
    V_OFF = 51
    K1 = 52
    K2 = 53
    M_OFF = 54
    DIR = 55
    P_M = 80
    XOUT = 81


@dataclass(frozen=True)
class LimitParam:
    """Position, velocity and torque ranges used for fixed-point mapping."""

    q_max: float
    dq_max: float
    tau_max: float


_DEFAULT_LIMITS = {
    MotorType.DM4310: LimitParam(12.5, 30, 10),
    MotorType.DM4310_48V: LimitParam(12.5, 50, 10),
    MotorType.DM4340: LimitParam(12.5, 10, 28),
    MotorType.DM4340_48V: LimitParam(12.5, 10, 28),
    MotorType.DM6006: LimitParam(12.5, 45, 12),
    MotorType.DM8006: LimitParam(12.5, 45, 20),
    MotorType.DM8009: LimitParam(12.5, 45, 54),
    MotorType.DM10010L: LimitParam(12.5, 25, 200),
    MotorType.DM10010: LimitParam(12.5, 20, 200),
    MotorType.DMH3510: LimitParam(12.5, 280, 1),
    MotorType.DMH6215: LimitParam(12.5, 45, 10),
    MotorType.DMG6220: LimitParam(12.5, 45, 10),
}

_limits: dict[MotorType, LimitParam] = dict(_DEFAULT_LIMITS)


def limit_for(motor_type: MotorType | int) -> LimitParam:
    """Return the current limit parameters for a motor type."""
    return _limits[MotorType(motor_type)]


def set_limit(motor_type: MotorType | int, limit: LimitParam) -> None:
    """Replace the limit parameters of a motor type."""
    _limits[MotorType(motor_type)] = limit


def _f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def float_to_uint(x: float, xmin: float, xmax: float, bits: int) -> int:
    """Map ``x`` linearly from ``[xmin, xmax]`` onto an unsigned ``bits``-wide integer."""
    top = (1 << bits) - 1
    span = _f32(xmax - xmin)
    norm = _f32(_f32(x - xmin) / span)
    scaled = _f32(norm * top)
    return min(max(int(scaled), 0), top)


def uint_to_float(x: int, xmin: float, xmax: float, bits: int) -> float:
    """Map an unsigned ``bits``-wide integer back onto ``[xmin, xmax]``."""
    span = _f32(xmax - xmin)
    norm = _f32(x / ((1 << bits) - 1))
    return _f32(_f32(norm * span) + xmin)


def is_integer_register(rid: int) -> bool:
    """Tell whether a register holds an unsigned integer rather than a float."""
    return 7 <= rid <= 10 or 13 <= rid <= 16 or 35 <= rid <= 36


def bytes_to_float(data: bytes) -> float:
    """Read a little-endian float32 from the first four bytes of ``data``."""
    if len(data) < 4:
        raise ValueError(f"need 4 bytes for a float, got {len(data)}")
    return struct.unpack_from("<f", bytes(data))[0]


def encode_mit(
    limit: LimitParam, kp: float, kd: float, q: float, dq: float, tau: float
) -> bytes:
    """Pack an MIT-mode command into the 8-byte CAN payload."""
    kp_u = float_to_uint(kp, KP_MIN, KP_MAX, 12)
    kd_u = float_to_uint(kd, KD_MIN, KD_MAX, 12)
    q_u = float_to_uint(q, -limit.q_max, limit.q_max, 16)
    dq_u = float_to_uint(dq, -limit.dq_max, limit.dq_max, 12)
    tau_u = float_to_uint(tau, -limit.tau_max, limit.tau_max, 12)
    return bytes(
        (
            (q_u >> 8) & 0xFF,
            q_u & 0xFF,
            dq_u >> 4,
            ((dq_u & 0xF) << 4) | ((kp_u >> 8) & 0xF),
            kp_u & 0xFF,
            kd_u >> 4,
            ((kd_u & 0xF) << 4) | ((tau_u >> 8) & 0xF),
            tau_u & 0xFF,
        )
    )


def decode_feedback(data: bytes, limit: LimitParam) -> tuple[float, float, float]:
    """Unpack position, velocity and torque from a feedback CAN payload."""
    if len(data) < 6:
        raise ValueError(f"feedback payload too short: {len(data)} bytes")
    q_u = (data[1] << 8) | data[2]
    dq_u = (data[3] << 4) | (data[4] >> 4)
    tau_u = ((data[4] & 0xF) << 8) | data[5]
    return (
        uint_to_float(q_u, -limit.q_max, limit.q_max, 16),
        uint_to_float(dq_u, -limit.dq_max, limit.dq_max, 12),
        uint_to_float(tau_u, -limit.tau_max, limit.tau_max, 12),
    )


_SEND_FORMAT = struct.Struct("<2sBBIIBIBBBB8sB")
_RECEIVE_FORMAT = struct.Struct("<BBBI8sB")


@dataclass(frozen=True)
class SendFrame:
    """A frame sent to the adapter that forwards one CAN data frame."""

    can_id: int = 0x01
    data: bytes = bytes(8)
    frame_header: bytes = b"\x55\xaa"
    frame_len: int = 0x1E
    cmd: int = 0x03
    send_times: int = 1
    time_interval: int = 10
    id_type: int = 0
    frame_type: int = 0
    length: int = 0x08
    id_acc: int = 0
    data_acc: int = 0
    crc: int = 0

    SIZE = _SEND_FORMAT.size

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) != 8:
            raise ValueError(f"CAN payload must be 8 bytes, got {len(self.data)}")
        if not 0 <= self.can_id <= 0xFFFFFFFF:
            raise ValueError(f"CAN id out of range: {self.can_id}")

    def to_bytes(self) -> bytes:
        """Serialise the frame into its packed wire form."""
        return _SEND_FORMAT.pack(
            self.frame_header,
            self.frame_len,
            self.cmd,
            self.send_times,
            self.time_interval,
            self.id_type,
            self.can_id,
            self.frame_type,
            self.length,
            self.id_acc,
            self.data_acc,
            self.data,
            self.crc,
        )


@dataclass(frozen=True)
class ReceiveFrame:
    """A frame received from the adapter carrying one CAN frame."""

    frame_header: int
    cmd: int
    data_len: int
    ide: int
    rtr: int
    can_id: int
    data: bytes = field(default=bytes(8))
    frame_end: int = 0

    SIZE = _RECEIVE_FORMAT.size

    @classmethod
    def from_bytes(cls, raw: bytes) -> ReceiveFrame:
        """Parse a packed frame; the input must be exactly ``SIZE`` bytes."""
        if len(raw) != cls.SIZE:
            raise ValueError(f"expected {cls.SIZE} bytes, got {len(raw)}")
        header, cmd, flags, can_id, data, end = _RECEIVE_FORMAT.unpack(bytes(raw))
        return cls(
            frame_header=header,
            cmd=cmd,
            data_len=flags & 0x3F,
            ide=(flags >> 6) & 0x1,
            rtr=(flags >> 7) & 0x1,
            can_id=can_id,
            data=data,
            frame_end=end,
        )

    def is_ok(self) -> bool:
        """Tell whether the adapter reported a successful receive."""
        return self.cmd == 0x11 and self.frame_end == 0x55
"""Driving several Damiao motors that share one USB-to-CAN serial adapter."""

from __future__ import annotations

import logging
import struct
import threading
import time
from collections.abc import Mapping
from typing import Protocol

from dmjoint.motor import ActuatorData, Motor
from dmjoint.protocol import (
    BROADCAST_ID,
    CMD_DISABLE,
    CMD_ENABLE,
    CMD_SET_ZERO,
    MAX_RETRIES,
    POS_MODE,
    RETRY_INTERVAL,
    SPEED_MODE,
    ControlMode,
    LimitParam,
    ReceiveFrame,
    SendFrame,
    bytes_to_float,
    decode_feedback,
    encode_mit,
    is_integer_register,
    set_limit,
)

log = logging.getLogger(__name__)

_COMMAND_REPEATS = 20
_READ_PARAM = 0x33
_WRITE_PARAM = 0x55
_SAVE_PARAM = 0xAA
_REFRESH = 0xCC


class MotorControlError(RuntimeError):
    """Raised when the adapter cannot be opened or a motor is unknown."""


class Transport(Protocol):
    """The part of a serial port the controller uses."""

    def write(self, data: bytes) -> object: ...

    def read(self, size: int) -> bytes: ...

    def close(self) -> None: ...


def _open_serial(port: str, baud_rate: int, timeout: float) -> Transport:
    import serial

    try:
        return serial.Serial(
            port=port,
            baudrate=baud_rate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            xonxoff=False,
            rtscts=False,
            timeout=timeout,
        )
    except (serial.SerialException, ValueError, OSError) as exc:
        log.error("Failed to initialize serial port %s: %s", port, exc)
        raise MotorControlError("Motor_Control initialization failed") from exc


class MotorControl:
    """All motors reachable through one serial port.

    Opening the controller enables every motor and starts a background
    thread that decodes feedback frames. ``close`` parks the motors with a
    damping-only MIT command, stops the thread and closes the port.
    """

    def __init__(
        self,
        serial_port: str,
        baud_rate: int,
        data: Mapping[int, ActuatorData],
        *,
        transport: Transport | None = None,
        settle_time: float = 1.0,
        command_interval: float = 0.002,
        retry_interval: float = RETRY_INTERVAL,
        save_delay: float = 0.1,
        read_timeout: float = 0.1,
        start_reader: bool = True,
    ) -> None:
        self.data = data
        self.motors: dict[int, Motor] = {}
        self.command_interval = command_interval
        self.retry_interval = retry_interval
        self.save_delay = save_delay
        self._write_lock = threading.Lock()
        self._frame_lock = threading.Lock()
        self._last_frame: ReceiveFrame | None = None
        self._stop = threading.Event()
        self._reader: threading.Thread | None = None
        self._closed = False

        for actuator in data.values():
            self.add_motor(Motor(actuator.motor_type, actuator.can_id, actuator.mst_id))

        if transport is None:
            transport = _open_serial(serial_port, baud_rate, read_timeout)
        self._transport = transport
        if settle_time > 0:
            time.sleep(settle_time)

        self.enable()
        if start_reader:
            self._reader = threading.Thread(
                target=self._reader_loop, name=f"motor-feedback-{serial_port}", daemon=True
            )
            self._reader.start()
        log.info("Motor control on %s ready", serial_port)

    # -- lifecycle -------------------------------------------------------

    def close(self) -> None:
        """Park every motor, stop the feedback thread and close the port."""
        if self._closed:
            return
        self._closed = True
        for motor in list(self.motors.values()):
            self.control_mit(motor, 0.0, 0.3, 0.0, 0.0, 0.0)
        self._stop.set()
        if self._reader is not None and self._reader.is_alive():
            self._reader.join()
        if getattr(self._transport, "is_open", True):
            self._transport.close()
        self.motors.clear()

    def __enter__(self) -> MotorControl:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- motor registry --------------------------------------------------

    def add_motor(self, motor: Motor) -> None:
        """Register a motor under both its slave and its master id."""
        self.motors.setdefault(motor.slave_id, motor)
        self.motors.setdefault(motor.master_id, motor)

    def _require(self, motor_id: int, message: str) -> Motor:
        try:
            return self.motors[motor_id]
        except KeyError:
            raise MotorControlError(message) from None

    # -- sending ---------------------------------------------------------

    def _send(self, can_id: int, payload: bytes) -> None:
        frame = SendFrame(can_id=can_id, data=payload)
        with self._write_lock:
            self._transport.write(frame.to_bytes())

    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def _control_cmd(self, motor_id: int, cmd: int) -> None:
        self._send(motor_id, b"\xff" * 7 + bytes((cmd,)))

    def enable(self) -> None:
        """Send the enable command to every motor."""
        for motor in list(self.motors.values()):
            for _ in range(_COMMAND_REPEATS):
                self._control_cmd(motor.slave_id, CMD_ENABLE)
                self._pause(self.command_interval)

    def disable(self) -> None:
        """Send the disable command to every motor."""
        for motor in list(self.motors.values()):
            for _ in range(_COMMAND_REPEATS):
                self._control_cmd(motor.slave_id, CMD_DISABLE)
            self._pause(self.command_interval)

    def set_zero_position(self) -> None:
        """Make the current position of every motor its zero."""
        for motor in list(self.motors.values()):
            for _ in range(_COMMAND_REPEATS):
                self._control_cmd(motor.slave_id, CMD_SET_ZERO)
            self._pause(self.command_interval)

    @staticmethod
    def _id_bytes(motor_id: int) -> bytes:
        return bytes((motor_id & 0xFF, (motor_id >> 8) & 0xFF))

    def refresh_motor_status(self, motor: Motor) -> None:
        """Ask a motor to report its feedback."""
        payload = self._id_bytes(motor.slave_id) + bytes((_REFRESH, 0, 0, 0, 0, 0))
        self._send(BROADCAST_ID, payload)

    def control_mit(
        self, motor: Motor, kp: float, kd: float, q: float, dq: float, tau: float
    ) -> None:
        """Send an MIT-mode command."""
        motor_id = motor.slave_id
        target = self._require(motor_id, "Motor_Control id not found")
        self._send(motor_id, encode_mit(target.limit, kp, kd, q, dq, tau))

    def control_pos_vel(self, motor: Motor, pos: float, vel: float) -> None:
        """Send a position-velocity mode command."""
        motor_id = motor.slave_id
        self._require(motor_id, "POS_VEL ERROR : Motor_Control id not found")
        self._send(motor_id + POS_MODE, struct.pack("<ff", pos, vel))

    def control_vel(self, motor: Motor, vel: float) -> None:
        """Send a velocity mode command."""
        motor_id = motor.slave_id
        self._require(motor_id, "VEL ERROR : id not found")
        self._send(motor_id + SPEED_MODE, struct.pack("<f", vel) + bytes(4))

    def _write_motor_param(self, motor: Motor, rid: int, value: bytes) -> None:
        payload = self._id_bytes(motor.slave_id) + bytes((_WRITE_PARAM, rid)) + value[:4]
        self._send(BROADCAST_ID, payload)

    # -- receiving -------------------------------------------------------

    def handle_feedback(self, frame: ReceiveFrame) -> None:
        """Remember a received frame and apply it as motor feedback if it is one."""
        with self._frame_lock:
            self._last_frame = frame
        if not frame.is_ok():
            return
        motor = self.motors.get(frame.can_id)
        if motor is None:
            return
        motor.receive_data(*decode_feedback(frame.data, motor.limit))

    def receive_param(self) -> None:
        """Store a register value carried by the latest received frame."""
        with self._frame_lock:
            frame = self._last_frame
        if frame is None or not frame.is_ok():
            return
        data = frame.data
        if data[2] not in (_READ_PARAM, _WRITE_PARAM):
            return
        slave_id = (data[1] << 8) | data[0]
        rid = data[3]
        motor = self.motors.get(slave_id)
        if motor is None:
            return
        if is_integer_register(rid):
            motor.set_param(rid, int.from_bytes(data[4:8], "little"))
        else:
            motor.set_param(rid, bytes_to_float(data[4:8]))

    def _read_frame(self) -> ReceiveFrame | None:
        try:
            raw = self._transport.read(ReceiveFrame.SIZE)
        except Exception as exc:  # noqa: BLE001 - the reader must keep running
            log.error("An exception occurred during serial read: %s", exc)
            return None
        if not raw:
            return None
        if len(raw) != ReceiveFrame.SIZE:
            log.warning(
                "Incomplete frame received. Expected %d, got %d", ReceiveFrame.SIZE, len(raw)
            )
            return None
        return ReceiveFrame.from_bytes(raw)

    def _reader_loop(self) -> None:
        while not self._stop.is_set():
            frame = self._read_frame()
            if frame is not None:
                self.handle_feedback(frame)

    # -- registers -------------------------------------------------------

    def _await_param(self, motor_id: int, rid: int) -> Motor | None:
        for _ in range(MAX_RETRIES):
            self._pause(self.retry_interval)
            self.receive_param()
            motor = self.motors.get(motor_id)
            if motor is not None and motor.has_param(rid):
                return motor
        return None

    def read_motor_param(self, motor: Motor, rid: int) -> float:
        """Read a register; returns 0.0 when the motor does not answer."""
        self._require(motor.slave_id, "read param ERROR : Motor_Control id not found")
        payload = self._id_bytes(motor.slave_id) + bytes((_READ_PARAM, rid, 0, 0, 0, 0))
        self._send(BROADCAST_ID, payload)
        target = self._await_param(motor.slave_id, rid)
        if target is None:
            return 0.0
        if is_integer_register(rid):
            return float(target.get_param_as_uint32(rid))
        return target.get_param_as_float(rid)

    def switch_control_mode(self, motor: Motor, mode: ControlMode | int) -> bool:
        """Switch a motor's control mode and tell whether it confirmed."""
        rid = 10
        self._write_motor_param(motor, rid, bytes((int(mode) & 0xFF, 0, 0, 0)))
        if motor.slave_id not in self.motors:
            return False
        target = self._await_param(motor.slave_id, rid)
        if target is None:
            return False
        return target.get_param_as_uint32(rid) == int(mode)

    def change_motor_param(self, motor: Motor, rid: int, data: float) -> bool:
        """Write a register and tell whether the motor confirmed the new value."""
        if is_integer_register(rid):
            expected = int(data) & 0xFFFFFFFF
            self._write_motor_param(motor, rid, struct.pack("<I", expected))
        else:
            self._write_motor_param(motor, rid, struct.pack("<f", data))
        if motor.slave_id not in self.motors:
            return False
        target = self._await_param(motor.slave_id, rid)
        if target is None:
            return False
        if is_integer_register(rid):
            return target.get_param_as_uint32(rid) == expected
        return abs(target.get_param_as_float(rid) - data) < 0.1

    def save_motor_param(self, motor: Motor) -> None:
        """Disable the motors and store a motor's registers in its flash."""
        self.disable()
        payload = self._id_bytes(motor.slave_id) + bytes((_SAVE_PARAM, 0x01, 0, 0, 0, 0))
        self._send(BROADCAST_ID, payload)
        self._pause(self.save_delay)

    @staticmethod
    def change_motor_limit(motor: Motor, q_max: float, dq_max: float, tau_max: float) -> None:
        """Change the mapping limits used for motors of this motor's type."""
        set_limit(motor.motor_type, LimitParam(q_max, dq_max, tau_max))

    # -- cyclic exchange ---------------------------------------------------

    def write(self) -> None:
        """Send the commands held in the actuator data to every motor."""
        for can_id, actuator in self.data.items():
            motor = self._require(can_id, "read ERROR : Motor_Control id not found")
            self.control_mit(
                motor, actuator.kp, actuator.kd, actuator.cmd_pos, actuator.cmd_vel,
                actuator.cmd_effort,
            )

    def read(self) -> None:
        """Copy the latest motor feedback into the actuator data."""
        for can_id, actuator in self.data.items():
            motor = self._require(can_id, "read ERROR : Motor_Control id not found")
            actuator.pos = motor.position
            actuator.vel = motor.velocity
            actuator.effort = motor.tau
            log.debug(
                "motor %d pos: %s vel: %s effort: %s",
                can_id, actuator.pos, actuator.vel, actuator.effort,
            )
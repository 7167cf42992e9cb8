"""A joint-level hardware interface over one or more motor controllers."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from dmjoint.control import MotorControl
from dmjoint.motor import ActuatorData
from dmjoint.protocol import MotorType

log = logging.getLogger("DmHW")

HW_IF_POSITION = "position"
HW_IF_VELOCITY = "velocity"
HW_IF_EFFORT = "effort"

_STATE_FIELDS = (
    (HW_IF_POSITION, "pos"),
    (HW_IF_VELOCITY, "vel"),
    (HW_IF_EFFORT, "effort"),
)

_COMMAND_FIELDS = (
    ("position_des", "cmd_pos"),
    ("velocity_des", "cmd_vel"),
    ("kp", "kp"),
    ("kd", "kd"),
    ("feedforward", "cmd_effort"),
)

ControllerFactory = Callable[[str, int, Mapping[int, ActuatorData]], MotorControl]


class CallbackReturn(Enum):
    """Outcome of a lifecycle transition."""

    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


def motor_type_from_name(name: str) -> MotorType:
    """Map a motor model name to its type; unknown names fall back to DM4310."""
    return {
        "DM4310": MotorType.DM4310,
        "DM4340": MotorType.DM4340,
        "DM8006": MotorType.DM8006,
    }.get(name, MotorType.DM4310)


@dataclass
class JointInfo:
    """A joint as described in the robot description, with its string parameters."""

    name: str
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass
class InterfaceHandle:
    """A named view onto one value of a joint's actuator data."""

    prefix_name: str
    interface_name: str
    _target: ActuatorData = field(repr=False)
    _attribute: str = field(repr=False)

    @property
    def full_name(self) -> str:
        return f"{self.prefix_name}/{self.interface_name}"

    def get(self) -> float:
        """Return the current value."""
        return getattr(self._target, self._attribute)

    def set(self, value: float) -> None:
        """Replace the current value."""
        setattr(self._target, self._attribute, float(value))


class DmHW:
    """Joints driven through one motor controller per serial port."""

    def __init__(self, controller_factory: ControllerFactory = MotorControl) -> None:
        self._factory = controller_factory
        self.joints: list[JointInfo] = []
        self.actuators: list[ActuatorData] = []
        self.controllers: dict[str, MotorControl] = {}
        self.port_config: dict[str, dict[int, ActuatorData]] = {}
        self.joint_to_controller: dict[int, MotorControl] = {}

    def on_init(self, joints: Iterable[JointInfo]) -> CallbackReturn:
        """Read the joints' parameters and open a controller for each serial port."""
        log.info("Initializing Damiao Hardware Interface...")
        self.joints = list(joints)
        self.actuators = []
        self.port_config = {}
        self.joint_to_controller = {}
        port_baud: dict[str, int] = {}

        for joint in self.joints:
            params = joint.parameters
            port = params["serial_port"]
            baud_rate = int(params["baud_rate"])
            can_id = int(params["can_id"])
            mst_id = int(params["mst_id"])
            motor_type = motor_type_from_name(params["motor_type"])

            actuator = ActuatorData(
                name=joint.name, motor_type=motor_type, can_id=can_id, mst_id=mst_id
            )
            self.port_config.setdefault(port, {})[can_id] = dataclasses.replace(actuator)
            port_baud.setdefault(port, baud_rate)
            self.actuators.append(actuator)

        for port, config in self.port_config.items():
            baud_rate = port_baud[port]
            log.info("Creating Motor_Control for port '%s' at baud rate %d", port, baud_rate)
            try:
                self.controllers[port] = self._factory(port, baud_rate, config)
            except Exception as exc:  # noqa: BLE001 - any failure aborts initialisation
                log.critical("Failed to create Motor_Control for port '%s': %s", port, exc)
                return CallbackReturn.ERROR

        for index, joint in enumerate(self.joints):
            self.joint_to_controller[index] = self.controllers[joint.parameters["serial_port"]]

        log.info("Hardware Interface initialized successfully.")
        return CallbackReturn.SUCCESS

    def on_configure(self) -> CallbackReturn:
        log.info("Configuring hardware...")
        log.info("Hardware configured successfully.")
        return CallbackReturn.SUCCESS

    def on_cleanup(self) -> CallbackReturn:
        """Close every controller."""
        log.info("Cleaning up hardware...")
        for controller in self.controllers.values():
            controller.close()
        self.controllers.clear()
        self.joint_to_controller.clear()
        log.info("Hardware cleaned up successfully.")
        return CallbackReturn.SUCCESS

    def on_activate(self) -> CallbackReturn:
        """Enable every motor."""
        log.info("Activating hardware...")
        for controller in self.controllers.values():
            controller.enable()
        log.info("Hardware activated successfully.")
        return CallbackReturn.SUCCESS

    def on_deactivate(self) -> CallbackReturn:
        """Disable every motor."""
        log.info("Deactivating hardware...")
        for controller in self.controllers.values():
            controller.disable()
        log.info("Hardware deactivated successfully.")
        return CallbackReturn.SUCCESS

    def on_error(self) -> CallbackReturn:
        """Disable every motor after an error."""
        log.critical("Hardware has encountered an error. Deactivating...")
        self.on_deactivate()
        return CallbackReturn.SUCCESS

    def export_state_interfaces(self) -> list[InterfaceHandle]:
        """Position, velocity and effort of every joint."""
        return [
            InterfaceHandle(actuator.name, name, actuator, attribute)
            for actuator in self.actuators
            for name, attribute in _STATE_FIELDS
        ]

    def export_command_interfaces(self) -> list[InterfaceHandle]:
        """Target position, velocity, gains and feed-forward torque of every joint."""
        return [
            InterfaceHandle(actuator.name, name, actuator, attribute)
            for actuator in self.actuators
            for name, attribute in _COMMAND_FIELDS
        ]

    def _config_for(self, joint: JointInfo) -> ActuatorData:
        params = joint.parameters
        return self.port_config[params["serial_port"]][int(params["can_id"])]

    def read(self) -> None:
        """Fetch the latest feedback into the joints' state values."""
        for controller in self.controllers.values():
            controller.read()
        for joint, actuator in zip(self.joints, self.actuators):
            latest = self._config_for(joint)
            actuator.pos = latest.pos
            actuator.vel = latest.vel
            actuator.effort = latest.effort

    def write(self) -> None:
        """Send the joints' command values to the motors."""
        for joint, actuator in zip(self.joints, self.actuators):
            target = self._config_for(joint)
            target.cmd_pos = actuator.cmd_pos
            target.cmd_vel = actuator.cmd_vel
            target.kp = actuator.kp
            target.kd = actuator.kd
            target.cmd_effort = actuator.cmd_effort
        for controller in self.controllers.values():
            controller.write()
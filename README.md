# dmjoint

This package drives DM-series joint motors that sit behind a USB-to-CAN serial
adapter. It also has a small joint-level hardware interface built on that driver.

## What it provides

- `dmjoint.protocol` describes the wire format:
  - motor types (`MotorType`), control modes (`ControlMode`) and register ids (`Register`);
  - per-type mapping limits (`LimitParam`, `limit_for`, `set_limit`);
  - the adapter's send and receive frames (`SendFrame.to_bytes`, `ReceiveFrame.from_bytes`, `ReceiveFrame.is_ok`);
  - fixed-point helpers (`float_to_uint`, `uint_to_float`, `is_integer_register`, `bytes_to_float`);
  - MIT command encoding (`encode_mit`) and feedback decoding (`decode_feedback`).
- `dmjoint.motor` holds per-motor and per-joint data:
  - `Motor` keeps one motor's ids, its latest feedback (`position`, `velocity`, `tau`) and any register values read back from it;
  - `ActuatorData` holds a joint's configuration, state and commands.
- `dmjoint.control` has `MotorControl`, which owns one serial port and every motor on it:
  - it enables and disables motors and sets their zero position;
  - it sends MIT, position-velocity and velocity commands;
  - it reads, writes and saves motor registers, and can switch control modes;
  - a background thread decodes feedback frames as they arrive;
  - commands to a motor it does not know raise `MotorControlError`;
  - a register read that gets no answer returns `0.0`.
- `dmjoint.hardware` has `DmHW`, which groups joints by serial port and starts one `MotorControl` per port:
  - each joint shows up as named state interfaces (`position`, `velocity`, `effort`);
  - each joint also has command interfaces (`position_des`, `velocity_des`, `kp`, `kd`, `feedforward`);
  - all of these are `InterfaceHandle` objects with `get` and `set`.

## Installation

```
pip install .
```

The package depends on `pyserial`. To install the test dependencies, run `pip install .[test]`.

## Usage

```python
from dmjoint.hardware import CallbackReturn, DmHW, JointInfo

joints = [
    JointInfo(
        name="joint1",
        parameters={
            "serial_port": "/dev/ttyACM0",
            "baud_rate": "921600",
            "can_id": "1",
            "mst_id": "17",
            "motor_type": "DM4310",
        },
    ),
]

hw = DmHW()
assert hw.on_init(joints) is CallbackReturn.SUCCESS
hw.on_activate()

commands = {(h.prefix_name, h.interface_name): h for h in hw.export_command_interfaces()}
states = {(h.prefix_name, h.interface_name): h for h in hw.export_state_interfaces()}

commands[("joint1", "kp")].set(5.0)
commands[("joint1", "kd")].set(0.5)
commands[("joint1", "position_des")].set(0.0)
hw.write()
hw.read()
print(states[("joint1", "position")].get())

hw.on_deactivate()
hw.on_cleanup()
```

Motor type names that `motor_type_from_name` does not recognise fall back to
`DM4310`. If a controller cannot be created, `on_init` returns
`CallbackReturn.ERROR`.

You can also drive a port directly through `MotorControl`. Creating one does
four things:

1. It opens the port.
2. It waits `settle_time` seconds (one second by default).
3. It enables every motor.
4. It starts the feedback thread.

Instead of a real port, you can pass any object with `write`, `read` and
`close` methods as the `transport` keyword argument.

`MotorControl` is a context manager. `close()`, or leaving the `with` block,
sends each motor a damping-only MIT command, stops the thread and closes the
port.

## What it does not do

This is a library only. It has no command-line tool and no controller manager
or robot-description loader. The caller supplies the joints as `JointInfo`
objects and runs the `read`/`write` cycle itself.

## Tests

```
pytest
```
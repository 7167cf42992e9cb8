import pytest

from dmjoint.motor import ActuatorData, Motor
from dmjoint.protocol import LimitParam, MotorType, limit_for, set_limit


@pytest.fixture
def restore_limit():
    saved = limit_for(MotorType.DM8006)
    yield
    set_limit(MotorType.DM8006, saved)


def test_motor_construction():
    motor = Motor(MotorType.DM4340, 0x01, 0x11)
    assert motor.slave_id == 0x01
    assert motor.master_id == 0x11
    assert motor.limit == limit_for(MotorType.DM4340)
    assert (motor.position, motor.velocity, motor.tau) == (0.0, 0.0, 0.0)


def test_motor_type_from_int():
    motor = Motor(5, 2, 3)
    assert motor.motor_type is MotorType.DM8006


def test_limit_copied_at_construction(restore_limit):
    motor = Motor(MotorType.DM8006, 1, 2)
    original = motor.limit
    set_limit(MotorType.DM8006, LimitParam(1.0, 1.0, 1.0))
    assert motor.limit == original
    assert Motor(MotorType.DM8006, 3, 4).limit == LimitParam(1.0, 1.0, 1.0)


def test_receive_data():
    motor = Motor(MotorType.DM4310, 1, 2)
    motor.receive_data(1.5, -2.25, 0.5)
    assert (motor.position, motor.velocity, motor.tau) == (1.5, -2.25, 0.5)


def test_float_param():
    motor = Motor(MotorType.DM4310, 1, 2)
    motor.set_param(0, 2.5)
    assert motor.has_param(0)
    assert motor.get_param_as_float(0) == 2.5
    assert motor.get_param_as_uint32(0) == 0


def test_uint_param():
    motor = Motor(MotorType.DM4310, 1, 2)
    motor.set_param(10, 3)
    assert motor.get_param_as_uint32(10) == 3
    assert motor.get_param_as_float(10) == 0.0


def test_float_param_stored_as_float32():
    motor = Motor(MotorType.DM4310, 1, 2)
    motor.set_param(1, 0.1)
    assert motor.get_param_as_float(1) == pytest.approx(0.1, rel=1e-6)


def test_missing_param():
    motor = Motor(MotorType.DM4310, 1, 2)
    assert not motor.has_param(7)
    assert motor.get_param_as_float(7) == 0.0
    assert motor.get_param_as_uint32(7) == 0


def test_param_overwrite():
    motor = Motor(MotorType.DM4310, 1, 2)
    motor.set_param(10, 1)
    motor.set_param(10, 4.5)
    assert motor.get_param_as_float(10) == 4.5
    assert motor.get_param_as_uint32(10) == 0


def test_uint_param_out_of_range():
    motor = Motor(MotorType.DM4310, 1, 2)
    with pytest.raises(ValueError):
        motor.set_param(10, -1)
    with pytest.raises(ValueError):
        motor.set_param(10, 1 << 32)


def test_actuator_data_defaults():
    data = ActuatorData(name="joint1", can_id=1, mst_id=0x11)
    assert data.motor_type is MotorType.DM4310
    assert (data.pos, data.vel, data.effort) == (0.0, 0.0, 0.0)
    assert (data.cmd_pos, data.cmd_vel, data.cmd_effort, data.kp, data.kd) == (0.0,) * 5


def test_actuator_data_motor_type_conversion():
    data = ActuatorData(motor_type=2)
    assert data.motor_type is MotorType.DM4340
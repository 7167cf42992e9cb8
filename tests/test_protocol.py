import struct

import pytest

from dmjoint.protocol import (
    LimitParam,
    MotorType,
    ReceiveFrame,
    SendFrame,
    bytes_to_float,
    decode_feedback,
    encode_mit,
    float_to_uint,
    is_integer_register,
    limit_for,
    set_limit,
    uint_to_float,
)


@pytest.fixture
def restore_limit():
    saved = limit_for(MotorType.DM6006)
    yield
    set_limit(MotorType.DM6006, saved)


def test_send_frame_header_and_size():
    raw = SendFrame().to_bytes()
    assert len(raw) == SendFrame.SIZE == 0x1E
    assert raw[:4] == b"\x55\xaa\x1e\x03"


def test_send_frame_places_id_and_payload():
    payload = bytes(range(1, 9))
    raw = SendFrame(can_id=0x7FF, data=payload).to_bytes()
    assert struct.unpack_from("<I", raw, 13)[0] == 0x7FF
    assert raw[21:29] == payload


def test_send_frame_rejects_bad_payload():
    with pytest.raises(ValueError):
        SendFrame(data=b"\x00\x01")


def test_receive_frame_parse():
    flags = (1 << 7) | (1 << 6) | 8
    payload = bytes(range(10, 18))
    raw = bytes([0xAA, 0x11, flags]) + struct.pack("<I", 0x12) + payload + bytes([0x55])
    frame = ReceiveFrame.from_bytes(raw)
    assert frame.cmd == 0x11
    assert (frame.data_len, frame.ide, frame.rtr) == (8, 1, 1)
    assert frame.can_id == 0x12
    assert frame.data == payload
    assert frame.is_ok()


def test_receive_frame_not_ok():
    raw = bytes([0xAA, 0x01, 8]) + struct.pack("<I", 1) + bytes(8) + bytes([0x55])
    assert not ReceiveFrame.from_bytes(raw).is_ok()


def test_receive_frame_wrong_length():
    with pytest.raises(ValueError):
        ReceiveFrame.from_bytes(bytes(ReceiveFrame.SIZE - 1))


def test_default_limit_table():
    assert limit_for(MotorType.DM4310) == LimitParam(12.5, 30, 10)
    assert limit_for(MotorType.DM10010L) == LimitParam(12.5, 25, 200)


def test_set_limit(restore_limit):
    new = LimitParam(1.0, 2.0, 3.0)
    set_limit(MotorType.DM6006, new)
    assert limit_for(MotorType.DM6006) == new


def test_float_to_uint_bounds_and_clamping():
    top = (1 << 12) - 1
    assert float_to_uint(-10.0, -10.0, 10.0, 12) == 0
    assert float_to_uint(10.0, -10.0, 10.0, 12) == top
    assert float_to_uint(50.0, -10.0, 10.0, 12) == top
    assert float_to_uint(-50.0, -10.0, 10.0, 12) == 0


@pytest.mark.parametrize("x", [-12.5, -3.2, 0.0, 1.7, 12.5])
def test_uint_float_round_trip(x):
    step = 25.0 / ((1 << 16) - 1)
    back = uint_to_float(float_to_uint(x, -12.5, 12.5, 16), -12.5, 12.5, 16)
    assert abs(back - x) <= step * 1.01


@pytest.mark.parametrize("rid", [7, 8, 9, 10, 13, 14, 15, 16, 35, 36])
def test_integer_registers(rid):
    assert is_integer_register(rid)


@pytest.mark.parametrize("rid", [0, 6, 11, 12, 17, 34, 37, 50, 81])
def test_float_registers(rid):
    assert not is_integer_register(rid)


def test_bytes_to_float():
    assert bytes_to_float(struct.pack("<f", 1.5)) == 1.5
    with pytest.raises(ValueError):
        bytes_to_float(b"\x00\x01")


def test_encode_mit_max_values():
    limit = limit_for(MotorType.DM4310)
    data = encode_mit(limit, 500.0, 5.0, limit.q_max, limit.dq_max, limit.tau_max)
    assert data == b"\xff" * 8


def test_encode_mit_min_values():
    limit = limit_for(MotorType.DM4310)
    data = encode_mit(limit, 0.0, 0.0, -limit.q_max, -limit.dq_max, -limit.tau_max)
    assert data == bytes(8)


def test_encode_mit_position_field():
    limit = limit_for(MotorType.DM4340)
    data = encode_mit(limit, 0.0, 0.0, 1.25, 0.0, 0.0)
    q_u = float_to_uint(1.25, -limit.q_max, limit.q_max, 16)
    assert (data[0] << 8) | data[1] == q_u


def test_decode_feedback_extremes():
    limit = limit_for(MotorType.DM8009)
    low = decode_feedback(bytes(8), limit)
    high = decode_feedback(b"\x00" + b"\xff" * 7, limit)
    assert low == pytest.approx((-limit.q_max, -limit.dq_max, -limit.tau_max))
    assert high == pytest.approx((limit.q_max, limit.dq_max, limit.tau_max))


def test_decode_feedback_fields():
    limit = limit_for(MotorType.DM4310)
    q_u = float_to_uint(2.0, -limit.q_max, limit.q_max, 16)
    dq_u = float_to_uint(-4.0, -limit.dq_max, limit.dq_max, 12)
    tau_u = float_to_uint(1.0, -limit.tau_max, limit.tau_max, 12)
    data = bytes(
        [0, q_u >> 8, q_u & 0xFF, dq_u >> 4, ((dq_u & 0xF) << 4) | (tau_u >> 8), tau_u & 0xFF, 0, 0]
    )
    q, dq, tau = decode_feedback(data, limit)
    assert q == pytest.approx(2.0, abs=0.001)
    assert dq == pytest.approx(-4.0, abs=0.02)
    assert tau == pytest.approx(1.0, abs=0.01)


def test_decode_feedback_short():
    with pytest.raises(ValueError):
        decode_feedback(b"\x00\x01", limit_for(MotorType.DM4310))
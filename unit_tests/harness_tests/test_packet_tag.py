import pytest

from zigbee_harness.packet_tag import PacketIdTag
from zigbee_nwk.params import NwkPacket


def test_wire_format_is_four_bytes_big_endian():
    assert PacketIdTag(1).serialize() == b"\x00\x00\x00\x01"
    assert PacketIdTag(0x01020304).serialize() == b"\x01\x02\x03\x04"
    assert PacketIdTag.deserialize(b"\x00\x00\x01\x00").packet_id == 256


def test_deserialize_rejects_wrong_length():
    with pytest.raises(ValueError):
        PacketIdTag.deserialize(b"\x00\x01")


def test_attach_and_peek_on_packet():
    p = NwkPacket(size_bytes=5)
    assert PacketIdTag.peek(p) is None

    PacketIdTag(42).attach(p)

    assert PacketIdTag.peek(p) == PacketIdTag(42)
    assert PacketIdTag.peek(p.copy()) == PacketIdTag(42)

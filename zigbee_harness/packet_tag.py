import struct
from dataclasses import dataclass
from typing import Optional

from zigbee_nwk.params import NwkPacket

_U32 = struct.Struct(">I")


@dataclass(frozen=True)
class PacketIdTag:
    """Packet identifier carried with an application payload as a 4-byte unsigned big-endian tag."""

    packet_id: int

    TAG_NAME = "PacketIdTag"

    def serialize(self) -> bytes:
        return _U32.pack(self.packet_id)

    @staticmethod
    def deserialize(data: bytes) -> "PacketIdTag":
        if len(data) != _U32.size:
            raise ValueError(f"PacketIdTag needs {_U32.size} bytes, got {len(data)}")
        return PacketIdTag(_U32.unpack(data)[0])

    def attach(self, packet: NwkPacket) -> None:
        packet.add_tag(self.TAG_NAME, self.serialize())

    @staticmethod
    def peek(packet: NwkPacket) -> Optional["PacketIdTag"]:
        raw = packet.peek_tag(PacketIdTag.TAG_NAME)
        if raw is None:
            return None
        return PacketIdTag.deserialize(raw)

"""16-bit network and 64-bit IEEE (extended) address helpers."""

# Short address a device holds until a JOIN assigns one. FindRoute reuses the
# same value to signal that no next hop exists.
UNASSIGNED_SHORT_ADDRESS = 0xFFFF
UNREACHABLE = 0xFFFF

COORDINATOR_SHORT_ADDRESS = 0x0000
MAX_STOCHASTIC_ADDRESS = 0xFFF7


def format_short_address(address: int) -> str:
    return f"{(address >> 8) & 0xFF:02x}:{address & 0xFF:02x}"


def format_extended_address(address: int) -> str:
    return ":".join(f"{b:02x}" for b in int(address).to_bytes(8, "big"))


def parse_extended_address(text: str | int) -> int:
    """Accept either an int or the colon-separated form ``00:00:00:00:00:00:ca:fe``."""
    if isinstance(text, int):
        value = text
    else:
        parts = str(text).strip().split(":")
        if len(parts) != 8:
            raise ValueError(f"Extended address must have 8 octets: {text!r}")
        value = int.from_bytes(bytes(int(p, 16) for p in parts), "big")
    if not 0 <= value < (1 << 64):
        raise ValueError(f"Extended address out of range: {text!r}")
    return value

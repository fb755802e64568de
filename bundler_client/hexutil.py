import re

from web3 import Web3

MAX_UINT256 = 2**256 - 1
MAX_UINT64 = 2**64 - 1

HEX_RE = re.compile(r"0x[0-9a-fA-F]*")
QUANTITY_RE = re.compile(r"0x(0|[1-9a-fA-F][0-9a-fA-F]*)")


def validate_hex(v) -> str:
    if not (isinstance(v, str) and HEX_RE.fullmatch(v)):
        raise ValueError(f"Not a hex value: {v!r}")

    return v


def encode_big(v: int) -> str:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"Not an integer: {v!r}")
    if not 0 <= v <= MAX_UINT256:
        raise ValueError("Must be in range [0, 2**256).")
    return hex(v)


def decode_big(v: str) -> int:
    if not (isinstance(v, str) and QUANTITY_RE.fullmatch(v)):
        raise ValueError(f"Not a hex quantity: {v!r}")

    v = int(v, 16)
    if v > MAX_UINT256:
        raise ValueError("Hex quantity larger than 256 bits.")
    return v


def encode_uint64(v: int) -> str:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"Not an integer: {v!r}")
    if not 0 <= v <= MAX_UINT64:
        raise ValueError("Must be in range [0, 2**64).")
    return hex(v)


def decode_uint64(v: str) -> int:
    v = decode_big(v)
    if v > MAX_UINT64:
        raise ValueError("Hex quantity larger than 64 bits.")
    return v


def encode_bytes(v: bytes) -> str:
    return "0x" + bytes(v).hex()


def decode_bytes(v: str) -> bytes:
    validate_hex(v)
    if len(v) % 2:
        raise ValueError("Incorrect bytes string.")
    return bytes.fromhex(v[2:])


def to_bytes(v) -> bytes:
    """Accept raw bytes or a 0x-prefixed hex string."""
    if isinstance(v, (bytes, bytearray)):
        return bytes(v)
    return decode_bytes(v)


def to_address(v) -> str:
    """Return the EIP-55 checksummed form of a 20-byte address."""
    if isinstance(v, (bytes, bytearray)):
        if len(v) != 20:
            raise ValueError("Must be a 20-bytes address.")
        return Web3.to_checksum_address(bytes(v))

    validate_hex(v)
    if len(v) != 42:
        raise ValueError(f"Must be an Ethereum address: {v!r}")
    digits = v[2:]
    mixed_case = digits not in (digits.lower(), digits.upper())
    if mixed_case and not Web3.is_checksum_address(v):
        raise ValueError(f"Invalid EIP-55 checksum: {v!r}")
    return Web3.to_checksum_address(v)


def to_hash(v) -> str:
    """Return the lower-case 0x-prefixed form of a 32-byte hash."""
    if isinstance(v, (bytes, bytearray)):
        if len(v) != 32:
            raise ValueError("Not a 32-bytes hex value.")
        return encode_bytes(v)

    validate_hex(v)
    if len(v) != 66:
        raise ValueError("Not a 32-bytes hex value.")
    return v.lower()

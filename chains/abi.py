"""
chains/abi.py - Minimal ABI helpers over eth-abi / eth-utils.

Call data is handled as 0x-prefixed hex strings throughout, matching what
eth_call and eth_sendRawTransaction expect on the wire.
"""

from typing import Any, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, is_address, to_checksum_address

from core.exceptions import ErrorCode, QuoteError


def selector(signature: str) -> str:
    """4-byte function selector as 0x-hex, e.g. selector("getReserves()") == "0x0902f1ac"."""
    return "0x" + function_signature_to_4byte_selector(signature).hex()


def signature_types(signature: str) -> list[str]:
    """
    Top-level argument types of a signature.

    Tuple arguments are kept whole: "f((address,uint24),uint256)" gives
    ["(address,uint24)", "uint256"].
    """
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    types: list[str] = []
    depth = 0
    current = ""
    for ch in inner:
        if ch == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        current += ch
    if current:
        types.append(current)
    return types


def encode_call(signature: str, args: Sequence[Any]) -> str:
    """Selector followed by the ABI-encoded arguments."""
    types = signature_types(signature)
    return selector(signature) + encode(types, list(args)).hex()


def hex_to_bytes(data: str) -> bytes:
    return bytes.fromhex(data[2:] if data.startswith("0x") else data)


def decode_result(types: Sequence[str], data: str) -> tuple:
    """Decode eth_call return data."""
    return decode(list(types), hex_to_bytes(data))


def decode_venue_result(types: Sequence[str], data: str | None, call: str) -> tuple | None:
    """
    Decode return data from a venue contract.

    Empty data (no contract at the address) gives None. Data that does not
    decode raises QuoteError(QUOTE_REVERT).
    """
    if not data or data == "0x":
        return None
    try:
        return decode_result(types, data)
    except (DecodingError, ValueError) as e:
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message=f"Malformed {call} response: {e}",
            details={"raw": data[:100]},
        )


def checksum(address: str) -> str:
    return to_checksum_address(address)


def is_valid_address(address: Any) -> bool:
    return isinstance(address, str) and is_address(address)

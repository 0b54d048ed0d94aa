import re

from web3 import Web3

SIGNATURE_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*\([^()\s]*(\([^()\s]*\)[^()\s]*)*\)$")


def event_topic(signature: str) -> str:
    """Return the topic-0 hash for a canonical event signature.

    Example:
        event_topic("Ping(address,uint256)")  # keccak256 of the signature
    """
    canonical = signature.replace(" ", "")
    if not SIGNATURE_PATTERN.match(canonical):
        raise ValueError(f"Not a canonical event signature: {signature!r}")
    return Web3.to_hex(Web3.keccak(text=canonical))


def resolve_topic(value: str) -> str:
    """Accept either a 32-byte topic or a canonical signature and return the topic."""
    if re.fullmatch(r"0x[0-9a-fA-F]{64}", value):
        return value.lower()
    return event_topic(value)

"""
Payment data passed between the channel client and the echo responder.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class TransferUnlocked:
    """An incoming conditional transfer that has been unlocked."""

    payment_id: str
    amount: int  # smallest currency unit (wei)
    sender: str  # public identifier of the paying party
    asset_id: str
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TransferUnlocked":
        """
        Parse an unlock event payload.

        Expected shape: {paymentId, amount, assetId, meta: {sender, ...}}.
        Amounts may arrive as decimal strings, hex strings or integers.
        """
        if not isinstance(payload, dict):
            raise ValueError("unlock event payload is not an object")
        meta = payload.get("meta") or {}
        if not isinstance(meta, dict):
            raise ValueError("unlock event meta is not an object")
        sender = meta.get("sender")
        if not sender:
            raise ValueError("unlock event is missing meta.sender")

        amount = parse_amount(payload["amount"])

        return cls(
            payment_id=payload["paymentId"],
            amount=amount,
            sender=sender,
            asset_id=payload.get("assetId") or "",
            meta=dict(meta),
        )


@dataclass
class TransferRequest:
    """An outbound transfer to submit through the channel."""

    amount: int
    recipient: str
    asset_id: str
    meta: Optional[dict[str, Any]] = None


@dataclass
class TransferResponse:
    """Result of a submitted transfer."""

    payment_id: str
    recipient: str
    amount: int


def parse_amount(value: Any) -> int:
    """Convert a wire amount to a non-negative integer."""
    if isinstance(value, bool):
        raise ValueError(f"invalid amount: {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        text = value.strip()
        amount = int(text, 16) if text.lower().startswith("0x") else int(text)
    elif isinstance(value, dict) and value.get("type") == "BigNumber":
        # ethers BigNumber JSON form: {"type": "BigNumber", "hex": "0x..."}
        amount = int(value["hex"], 16)
    else:
        raise ValueError(f"invalid amount: {value!r}")

    if amount < 0:
        raise ValueError(f"amount must be non-negative: {amount}")
    return amount

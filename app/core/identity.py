import re
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from app.core.exceptions import NotConnected

WALLET_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


@dataclass(frozen=True)
class Identity:
    """The acting wallet for one request."""

    address: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return bool(self.address)

    def require_address(self) -> str:
        if not self.is_connected:
            raise NotConnected("Please connect your wallet to continue.")
        return self.address

    def matches(self, wallet: Optional[str]) -> bool:
        return bool(self.address and wallet) and self.address.lower() == wallet.lower()


async def get_identity(x_wallet_address: Optional[str] = Header(None)) -> Identity:
    # A missing or malformed header means the wallet is not connected
    if x_wallet_address and WALLET_PATTERN.fullmatch(x_wallet_address.strip()):
        return Identity(address=x_wallet_address.strip())
    return Identity()

"""
Channel signer derived from a BIP-39 mnemonic.

The public identifier is the compressed secp256k1 public key of the
channel key, base58 encoded and prefixed with "indra".
"""

from dataclasses import dataclass

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_keys import keys

# Derivation path of the channel signing key
CHANNEL_KEY_PATH = "m/44'/60'/0'/25446/0"

PUBLIC_IDENTIFIER_PREFIX = "indra"

# Base58 charset
BASE58_CHARSET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

Account.enable_unaudited_hdwallet_features()


class WalletError(Exception):
    """Wallet could not be derived."""


def encode_base58(data: bytes) -> str:
    """Encode bytes as base58 (no checksum)."""
    num = int.from_bytes(data, "big")

    encoded = ""
    while num > 0:
        num, rem = divmod(num, 58)
        encoded = BASE58_CHARSET[rem] + encoded

    # Leading zero bytes are encoded as '1'
    pad = len(data) - len(data.lstrip(b"\x00"))
    return BASE58_CHARSET[0] * pad + encoded


@dataclass
class ChannelWallet:
    """Signing key used by the state channel client."""

    account: LocalAccount

    @classmethod
    def from_mnemonic(cls, mnemonic: str, path: str = CHANNEL_KEY_PATH) -> "ChannelWallet":
        """Derive the channel key from a mnemonic."""
        try:
            account = Account.from_mnemonic(mnemonic, account_path=path)
        except Exception as e:
            # eth-account raises ValidationError/ValueError depending on the problem
            raise WalletError(f"Invalid mnemonic: {e}") from e
        return cls(account=account)

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def public_key(self) -> bytes:
        """Compressed (33 byte) public key."""
        return keys.PrivateKey(self.account.key).public_key.to_compressed_bytes()

    @property
    def public_identifier(self) -> str:
        return PUBLIC_IDENTIFIER_PREFIX + encode_base58(self.public_key)

    def sign_digest(self, digest: bytes) -> str:
        """Sign a 32 byte digest as an EIP-191 personal message."""
        message = encode_defunct(primitive=digest)
        signed = self.account.sign_message(message)
        return "0x" + bytes(signed.signature).hex()

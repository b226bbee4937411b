"""
web2rep/protocol/binding.py

Identity Binding Protocol.

Links an identity hash (derived from an OAuth profile) to a wallet address.
The wallet signs a fixed-format binding message:

    Link identity {identityHash} to wallet {walletAddress lowercased}

Verifiers must rebuild this message byte for byte, so the template never
changes. Signing and elliptic-curve verification are external capabilities;
this module owns the message, the identity hash and the decision of when a
binding is ready.

States:
    UNLINKED -> READY -> LINKED

    UNLINKED: identity hash or wallet address missing
    READY:    both present (can_link)
    LINKED:   external verification accepted the exact message
Changing either input drops LINKED back to READY or UNLINKED.
"""

import hashlib
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from ..errors import SignatureInvalidError, ValidationError
from ..models import IdentityBinding

logger = logging.getLogger(__name__)

BINDING_MESSAGE_TEMPLATE = "Link identity {identity_hash} to wallet {wallet_address}"

WALLET_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


# =============================================================================
# EXTERNAL CAPABILITIES
# =============================================================================

class SignatureVerifier(ABC):
    """Verifies a wallet signature over a message (e.g. EIP-191 recovery)."""

    @abstractmethod
    def verify(self, address: str, message: str, signature: str) -> bool:
        pass


class WalletSigner(ABC):
    """Wallet integration that signs messages. Holds no key material here."""

    @abstractmethod
    def sign(self, message: str) -> str:
        pass


class IdentityRegistryReader(ABC):
    """Read-only view of an on-chain identity registry."""

    @abstractmethod
    def token_id_for_wallet(self, address: str) -> int:
        pass

    @abstractmethod
    def token_metadata(self, token_id: int) -> Mapping[str, Any]:
        pass


def lookup_identity_token(
    reader: IdentityRegistryReader,
    wallet_address: str,
) -> Optional[Tuple[int, Mapping[str, Any]]]:
    """
    Look up the identity token held by a wallet.

    Returns:
        (token_id, metadata), or None when the wallet holds no token
    """
    address = normalize_wallet_address(wallet_address)
    token_id = reader.token_id_for_wallet(address)
    if not token_id:
        return None
    return token_id, reader.token_metadata(token_id)


# =============================================================================
# IDENTITY HASH
# =============================================================================

@dataclass(frozen=True)
class IdentityData:
    """OAuth identity fields that feed the identity hash."""
    provider: str
    provider_id: Any
    email: Optional[str] = None
    name: Optional[str] = None
    timestamp: int = 0  # milliseconds

    def canonical(self) -> dict:
        return {
            "provider": self.provider.lower(),
            "providerId": self.provider_id,
            "email": self.email.lower() if self.email else None,
            "name": self.name or None,
            "timestamp": self.timestamp,
        }


def generate_identity_hash(data: IdentityData) -> str:
    """SHA-256 hex over the compact canonical JSON of the identity."""
    encoded = json.dumps(data.canonical(), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def verify_identity_hash(data: IdentityData, expected_hash: str) -> bool:
    return generate_identity_hash(data) == expected_hash


def parse_identity_data(
    provider: str,
    profile: Mapping[str, Any],
    timestamp: Optional[int] = None,
) -> IdentityData:
    """
    Extract identity fields from an OAuth profile.

    Args:
        provider: OAuth provider name
        profile: Provider profile (sub/id/login, email, name)
        timestamp: Milliseconds (defaults to now)
    """
    provider_id = profile.get("sub") or profile.get("id") or profile.get("login")
    if not provider_id:
        raise ValidationError(f"Profile for {provider} has no sub, id or login")
    return IdentityData(
        provider=provider.lower(),
        provider_id=provider_id,
        email=profile.get("email"),
        name=profile.get("name") or profile.get("login"),
        timestamp=timestamp or int(time.time() * 1000),
    )


# =============================================================================
# BINDING MESSAGE
# =============================================================================

def normalize_wallet_address(wallet_address: str) -> str:
    """Validate a 0x-prefixed 20-byte hex address and lowercase it."""
    if not isinstance(wallet_address, str) or not WALLET_ADDRESS_RE.match(wallet_address.strip()):
        raise ValidationError(f"Invalid wallet address: {wallet_address!r}")
    return wallet_address.strip().lower()


def build_binding_message(identity_hash: str, wallet_address: str) -> str:
    """
    Build the message a wallet signs to claim an identity.

    Raises:
        ValidationError: identity hash empty or wallet address malformed
    """
    if not identity_hash:
        raise ValidationError("Identity hash is required")
    return BINDING_MESSAGE_TEMPLATE.format(
        identity_hash=identity_hash,
        wallet_address=normalize_wallet_address(wallet_address),
    )


def can_link(identity_hash: Optional[str] = None, wallet_address: Optional[str] = None) -> bool:
    """True iff both the identity hash and the wallet address are present."""
    return bool(identity_hash) and bool(wallet_address)


def verify_binding(
    message: str,
    signature: str,
    claimed_address: str,
    verifier: SignatureVerifier,
) -> bool:
    """
    Check a binding signature with the external verifier.

    A verifier that raises is treated as a failed verification.
    """
    if not signature:
        return False
    try:
        return bool(verifier.verify(claimed_address, message, signature))
    except Exception as e:
        logger.warning(f"Signature verification error for {claimed_address}: {e}")
        return False


class BindingState(Enum):
    UNLINKED = "unlinked"
    READY = "ready"
    LINKED = "linked"


class IdentityBindingSession:
    """
    Tracks one identity/wallet pair through the binding state machine.

    Usage:
        session = IdentityBindingSession(verifier, identity_hash=h)
        session.update(wallet_address="0x...")
        session.link(signature)
        assert session.state == BindingState.LINKED
    """

    def __init__(
        self,
        verifier: SignatureVerifier,
        identity_hash: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ):
        self.verifier = verifier
        self._identity_hash: Optional[str] = None
        self._wallet_address: Optional[str] = None
        self._linked = False
        self.update(identity_hash=identity_hash, wallet_address=wallet_address)

    @property
    def identity_hash(self) -> Optional[str]:
        return self._identity_hash

    @property
    def wallet_address(self) -> Optional[str]:
        return self._wallet_address

    @property
    def state(self) -> BindingState:
        if not can_link(self._identity_hash, self._wallet_address):
            return BindingState.UNLINKED
        return BindingState.LINKED if self._linked else BindingState.READY

    @property
    def binding_message(self) -> Optional[str]:
        if not can_link(self._identity_hash, self._wallet_address):
            return None
        return build_binding_message(self._identity_hash, self._wallet_address)

    def update(
        self,
        identity_hash: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ) -> BindingState:
        """
        Replace the identity hash and/or wallet address.

        Pass "" to clear a value; None leaves it unchanged. Any change
        drops a LINKED binding.
        """
        new_hash = self._identity_hash if identity_hash is None else (identity_hash or None)
        new_wallet = self._wallet_address
        if wallet_address is not None:
            new_wallet = normalize_wallet_address(wallet_address) if wallet_address else None

        if new_hash != self._identity_hash or new_wallet != self._wallet_address:
            if self._linked:
                logger.info("Binding inputs changed, dropping link")
            self._linked = False
        self._identity_hash = new_hash
        self._wallet_address = new_wallet
        return self.state

    def link(self, signature: str) -> IdentityBinding:
        """
        Verify a signature over the binding message and mark the pair linked.

        Raises:
            ValidationError: identity hash or wallet missing (state UNLINKED)
            SignatureInvalidError: verifier rejected the signature
        """
        if self.state == BindingState.UNLINKED:
            raise ValidationError("Cannot link: missing identity or wallet")

        message = self.binding_message
        if not verify_binding(message, signature, self._wallet_address, self.verifier):
            logger.warning(f"Binding signature rejected for {self._wallet_address}")
            raise SignatureInvalidError(f"Signature does not match wallet {self._wallet_address}")

        self._linked = True
        logger.info(f"Linked identity {self._identity_hash[:16]}... to {self._wallet_address}")
        return self.snapshot()

    def sign_and_link(self, signer: WalletSigner) -> IdentityBinding:
        """Ask the wallet to sign the binding message, then link."""
        if self.state == BindingState.UNLINKED:
            raise ValidationError("Cannot link: missing identity or wallet")
        return self.link(signer.sign(self.binding_message))

    def snapshot(self) -> IdentityBinding:
        return IdentityBinding(
            identity_hash=self._identity_hash,
            wallet_address=self._wallet_address,
            binding_message=self.binding_message,
            linked=self.state == BindingState.LINKED,
        )

"""
phaeton.auth.signature — Wallet signature recovery
===================================================

Recovers the signer of an EIP-191 ``personal_sign`` message and compares it
with the address the challenge was issued to.
"""

from __future__ import annotations

import logging

from eth_account import Account
from eth_account.messages import encode_defunct

from phaeton.errors import AddressMismatch, InvalidSignature

logger = logging.getLogger(__name__)


class SignatureVerifier:
    def recover(self, message: str, signature: str) -> str:
        """Return the lower-cased address that signed *message*."""
        if not signature:
            raise InvalidSignature()
        try:
            recovered = Account.recover_message(
                encode_defunct(text=message), signature=signature
            )
        except Exception as exc:
            # eth-account raises a mix of ValueError, TypeError and
            # eth_keys BadSignature for malformed input.
            logger.info("Signature recovery failed: %s", exc)
            raise InvalidSignature() from exc
        return recovered.lower()

    def verify(self, address: str, message: str, signature: str) -> str:
        """Recover the signer and require it to be *address*.

        Returns the normalized address on success.
        """
        recovered = self.recover(message, signature)
        if recovered != address.strip().lower():
            raise AddressMismatch()
        return recovered

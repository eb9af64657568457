"""
tests/test_signature.py — Wallet signature recovery
====================================================
"""

from __future__ import annotations

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from phaeton.auth.signature import SignatureVerifier
from phaeton.errors import AddressMismatch, InvalidSignature

MESSAGE = "Sign in with your Ethereum wallet\nWallet: 0xabc\nNonce: n-1"


def sign(account, message: str) -> str:
    signed = account.sign_message(encode_defunct(text=message))
    return "0x" + bytes(signed.signature).hex()


class TestSignatureVerifier:
    @pytest.fixture(autouse=True)
    def _setup(self):
        self.verifier = SignatureVerifier()
        self.account = Account.create()

    def test_accepts_matching_wallet(self):
        signature = sign(self.account, MESSAGE)
        recovered = self.verifier.verify(self.account.address, MESSAGE, signature)
        assert recovered == self.account.address.lower()

    def test_address_comparison_is_case_insensitive(self):
        signature = sign(self.account, MESSAGE)
        assert self.verifier.verify(self.account.address.lower(), MESSAGE, signature)

    def test_rejects_other_wallet(self):
        other = Account.create()
        signature = sign(other, MESSAGE)
        with pytest.raises(AddressMismatch):
            self.verifier.verify(self.account.address, MESSAGE, signature)

    def test_rejects_mutated_message(self):
        signature = sign(self.account, MESSAGE)
        with pytest.raises(InvalidSignature):
            self.verifier.verify(self.account.address, MESSAGE + " ", signature)

    def test_malformed_signature_is_invalid(self):
        with pytest.raises(InvalidSignature) as exc_info:
            self.verifier.verify(self.account.address, MESSAGE, "0xdeadbeef")
        assert not isinstance(exc_info.value, AddressMismatch)

    def test_empty_signature_is_invalid(self):
        with pytest.raises(InvalidSignature):
            self.verifier.recover(MESSAGE, "")

    def test_mismatch_is_an_invalid_signature(self):
        assert issubclass(AddressMismatch, InvalidSignature)
        assert AddressMismatch().status_code == 401

"""
Decryption Proof Tests
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oracle.proof import ProofSigner, ProofVerifier, proof_message


class TestProofs:

    @pytest.fixture
    def signer(self):
        return ProofSigner()

    @pytest.fixture
    def verifier(self, signer):
        return ProofVerifier(signer.get_public_key_pem())

    def test_message_format(self):
        message = proof_message(5, b'["a","b"]')
        assert message.startswith(b"decryption-proof|5|")
        assert len(message.split(b"|")[2]) == 64

    def test_sign_and_verify(self, signer, verifier):
        proof = signer.prove(1, b'["forecast","demand=25kWh/2sessions"]')
        assert verifier.verify(1, b'["forecast","demand=25kWh/2sessions"]', proof)

    def test_tampered_cleartexts(self, signer, verifier):
        proof = signer.prove(1, b'["forecast","demand=25kWh/2sessions"]')
        assert not verifier.verify(1, b'["forecast","demand=26kWh/2sessions"]', proof)

    def test_wrong_request_id(self, signer, verifier):
        proof = signer.prove(1, b"x")
        assert not verifier.verify(2, b"x", proof)

    def test_malformed_proof(self, verifier):
        assert not verifier.verify(1, b"x", b"")
        assert not verifier.verify(1, b"x", b"garbage")

    def test_other_key(self, verifier):
        assert not verifier.verify(1, b"x", ProofSigner().prove(1, b"x"))

    def test_pem_roundtrip(self, signer):
        restored = ProofSigner.from_pem(signer.export_private_key())

        assert restored.key_id == signer.key_id
        assert ProofVerifier(signer.get_public_key_pem()).verify(1, b"x", restored.prove(1, b"x"))

    def test_password_protected_export(self, signer):
        pem = signer.export_private_key(password=b"secret")

        with pytest.raises(TypeError):
            ProofSigner.from_pem(pem)
        assert ProofSigner.from_pem(pem, password=b"secret").key_id == signer.key_id


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])

"""
Key Manager - Oracle Key Storage and Distribution
=================================================
Handles generation, storage, and distribution of the keys behind the ledger.

Key Distribution Model:
1. The decryption oracle generates the FHE context (public + secret)
   and an ECDSA signing key for decryption proofs
2. Public FHE context is distributed to submitters and the ledger
3. The oracle's public verification key is distributed to the ledger
4. Secret FHE context and signing key stay ONLY with the oracle,
   encrypted at rest with a Fernet master key
"""

import os
import json
import hashlib
from datetime import datetime
from typing import Optional, Tuple
from dataclasses import dataclass, asdict
from pathlib import Path
from cryptography.fernet import Fernet


@dataclass
class KeyMetadata:
    """Metadata about a stored key set"""
    context_hash: str
    created_at: str
    has_secret_key: bool
    poly_modulus_degree: int
    plain_modulus: int
    signing_key_id: str
    security_level: str = "128-bit"


class KeyManager:
    """
    Persists the oracle's key material.

    Files under storage_dir:
    - .master_key            Fernet key (0600)
    - secret_context.enc     Fernet-encrypted FHE context with secret key
    - public_context.bin     FHE context without secret key
    - signing_key.enc        Fernet-encrypted PEM of the proof signing key
    - key_metadata.json
    """

    def __init__(self, storage_dir: str = ".keys"):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self.fernet = Fernet(self._load_or_create_master_key())

        self._secret_context: Optional[bytes] = None
        self._public_context: Optional[bytes] = None
        self._signing_key_pem: Optional[bytes] = None
        self._metadata: Optional[KeyMetadata] = None

    def _load_or_create_master_key(self) -> bytes:
        key_file = self.storage_dir / ".master_key"

        if key_file.exists():
            with open(key_file, 'rb') as f:
                return f.read()

        key = Fernet.generate_key()
        with open(key_file, 'wb') as f:
            f.write(key)
        os.chmod(key_file, 0o600)
        return key

    def store_keys(self, fhe_engine, signing_key_pem: bytes, signing_key_id: str) -> Tuple[bytes, bytes]:
        """
        Store a freshly generated key set.

        Args:
            fhe_engine: ChargingFHE instance holding the secret context
            signing_key_pem: PKCS8 PEM of the oracle's proof signing key
            signing_key_id: Short id of the matching public key

        Returns:
            Tuple of (secret_context, public_context)
        """
        self._secret_context = fhe_engine.get_secret_context()
        self._public_context = fhe_engine.get_public_context()
        self._signing_key_pem = signing_key_pem

        self._metadata = KeyMetadata(
            context_hash=fhe_engine.get_context_hash(),
            created_at=datetime.now().isoformat(),
            has_secret_key=True,
            poly_modulus_degree=fhe_engine.poly_modulus_degree,
            plain_modulus=fhe_engine.plain_modulus,
            signing_key_id=signing_key_id
        )

        self._save_to_disk()
        return self._secret_context, self._public_context

    def _save_to_disk(self):
        with open(self.storage_dir / "secret_context.enc", 'wb') as f:
            f.write(self.fernet.encrypt(self._secret_context))

        with open(self.storage_dir / "public_context.bin", 'wb') as f:
            f.write(self._public_context)

        with open(self.storage_dir / "signing_key.enc", 'wb') as f:
            f.write(self.fernet.encrypt(self._signing_key_pem))

        with open(self.storage_dir / "key_metadata.json", 'w') as f:
            json.dump(asdict(self._metadata), f, indent=2)

    def load_keys(self) -> bool:
        """
        Load keys from disk.

        Returns:
            True if a complete key set was loaded
        """
        paths = [
            self.storage_dir / "secret_context.enc",
            self.storage_dir / "public_context.bin",
            self.storage_dir / "signing_key.enc",
            self.storage_dir / "key_metadata.json",
        ]
        if not all(p.exists() for p in paths):
            return False

        secret_path, public_path, signing_path, meta_path = paths

        with open(secret_path, 'rb') as f:
            self._secret_context = self.fernet.decrypt(f.read())

        with open(public_path, 'rb') as f:
            self._public_context = f.read()

        with open(signing_path, 'rb') as f:
            self._signing_key_pem = self.fernet.decrypt(f.read())

        with open(meta_path, 'r') as f:
            self._metadata = KeyMetadata(**json.load(f))

        return True

    def get_public_context(self) -> bytes:
        if self._public_context is None:
            raise ValueError("No keys loaded. Call store_keys() or load_keys() first.")
        return self._public_context

    def get_secret_context(self) -> bytes:
        """Get secret context (oracle only)"""
        if self._secret_context is None:
            raise ValueError("No keys loaded. Call store_keys() or load_keys() first.")
        return self._secret_context

    def get_signing_key_pem(self) -> bytes:
        if self._signing_key_pem is None:
            raise ValueError("No keys loaded. Call store_keys() or load_keys() first.")
        return self._signing_key_pem

    def get_metadata(self) -> Optional[KeyMetadata]:
        return self._metadata

    def verify_context(self, context_bytes: bytes) -> bool:
        """Verify a context matches our public context"""
        if self._public_context is None:
            return False
        our_hash = hashlib.sha256(self._public_context).hexdigest()
        their_hash = hashlib.sha256(context_bytes).hexdigest()
        return our_hash == their_hash

    def keys_exist(self) -> bool:
        return (self.storage_dir / "secret_context.enc").exists()

    def clear_keys(self):
        """Delete all key files (for key rotation)"""
        for f in self.storage_dir.glob("*"):
            if f.is_file():
                f.unlink()
        self._secret_context = None
        self._public_context = None
        self._signing_key_pem = None
        self._metadata = None

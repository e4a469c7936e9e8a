"""
Credential packaging for the transfer start request.

The scheme is static configuration. Exactly one form of the credentials is
produced: either the cleartext pair or a single JWE compact serialization
encrypted to the worker's public key (RSA-OAEP key wrapping,
A128CBC-HS256 content encryption).
"""

from __future__ import annotations

import base64
import binascii
import json

from jwcrypto import jwe, jwk
from jwcrypto.common import JWException, json_encode

from transferflow.core.errors import WorkerKeyError
from transferflow.core.logging import get_logger
from transferflow.core.models import EncryptionScheme

logger = get_logger(__name__)

KEY_ALGORITHM = "RSA-OAEP"
CONTENT_ALGORITHM = "A128CBC-HS256"


def serialize_credentials(export_auth_data: str, import_auth_data: str) -> str:
    """Serialize the auth data pair the way it is encrypted."""
    return json.dumps({"exportAuthData": export_auth_data, "importAuthData": import_auth_data})


def load_public_key(serialized: str) -> jwk.JWK:
    """Deserialize a worker public key.

    Accepts a JWK JSON document, a PEM-encoded public key, or the bare
    base64 DER body of one.
    """
    text = serialized.strip()
    try:
        if text.startswith("{"):
            key = jwk.JWK.from_json(text)
        elif text.startswith("-----BEGIN"):
            key = jwk.JWK.from_pem(text.encode("ascii"))
        else:
            base64.b64decode(text, validate=True)
            pem = f"-----BEGIN PUBLIC KEY-----\n{text}\n-----END PUBLIC KEY-----\n"
            key = jwk.JWK.from_pem(pem.encode("ascii"))
    except (JWException, ValueError, TypeError, binascii.Error) as e:
        raise WorkerKeyError(f"Unreadable worker public key: {e}") from e

    if key.key_type != "RSA":
        raise WorkerKeyError(f"Worker key must be RSA, got {key.key_type!r}")
    return key


class CredentialEncryptor:
    """Produces the credential fields of the start request."""

    def __init__(self, scheme: EncryptionScheme = EncryptionScheme.JWE) -> None:
        self.scheme = scheme

    def encrypt(self, plaintext: str, worker_public_key: str) -> str:
        """Encrypt ``plaintext`` into a JWE compact serialization."""
        key = load_public_key(worker_public_key)
        protected = {"alg": KEY_ALGORITHM, "enc": CONTENT_ALGORITHM}
        token = jwe.JWE(plaintext.encode("utf-8"), protected=json_encode(protected))
        token.add_recipient(key)
        return token.serialize(compact=True)

    def package(
        self,
        export_auth_data: str,
        import_auth_data: str,
        worker_public_key: str | None = None,
    ) -> dict[str, str]:
        """Return the credential payload for ``startTransferJob``.

        Raises:
            WorkerKeyError: The JWE scheme is configured and the key is
                missing or unreadable.
        """
        if self.scheme is EncryptionScheme.CLEARTEXT:
            logger.warning("Submitting credentials without encryption", scheme=self.scheme.value)
            return {"exportAuthData": export_auth_data, "importAuthData": import_auth_data}

        if not worker_public_key:
            raise WorkerKeyError("No worker public key available for encryption")

        ciphertext = self.encrypt(
            serialize_credentials(export_auth_data, import_auth_data),
            worker_public_key,
        )
        logger.debug("Credentials encrypted", scheme=self.scheme.value, alg=KEY_ALGORITHM, enc=CONTENT_ALGORITHM)
        return {"encryptedAuthData": ciphertext}

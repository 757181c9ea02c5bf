"""PEM key loading and digest signing.

A signing key source is either inline PEM text or a path to a PEM file; the
path wins when such a file exists. The key's own type selects the scheme:
RSA keys sign with PKCS#1 v1.5, EC keys with ECDSA. Both use SHA-384 as the
message digest over the archive digest bytes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from obby_packer.errors import SignatureError, SigningKeyError

PEM_MARKER = "-----BEGIN"

# PKCS#1 v1.5 needs the SHA-384 DigestInfo (19 + 48 bytes) plus 11 bytes of padding.
MIN_RSA_KEY_BYTES = 19 + 48 + 11

PrivateKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey
PublicKey = rsa.RSAPublicKey | ec.EllipticCurvePublicKey


def resolve_pem(source: str | bytes | Path) -> bytes:
    """Return PEM bytes for *source* (inline PEM, or path to a PEM file)."""
    if isinstance(source, bytes):
        return source
    if isinstance(source, Path):
        if not source.is_file():
            raise SigningKeyError(f"Key file not found: {source}")
        return source.read_bytes()
    text = source.strip()
    if not text:
        raise SigningKeyError("Empty key source")
    if not text.startswith(PEM_MARKER) and os.path.isfile(text):
        return Path(text).read_bytes()
    if PEM_MARKER not in text:
        raise SigningKeyError("Key source is neither PEM text nor an existing file")
    # Indented PEM blocks (e.g. from config heredocs) are accepted.
    return "\n".join(line.strip() for line in text.splitlines()).encode("ascii")


def _der_length_size(length: int) -> int:
    if length < 0x80:
        return 1
    return 1 + (length.bit_length() + 7) // 8


def max_signature_size(key: PrivateKey | PublicKey) -> int:
    """Upper bound on signature bytes produced with *key*.

    RSA signatures are exactly the modulus length. ECDSA signatures are a DER
    SEQUENCE of two INTEGERs each at most one byte longer than the curve order.
    """
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return (key.key_size + 7) // 8
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        int_len = (key.curve.key_size + 7) // 8 + 1
        int_tlv = 1 + _der_length_size(int_len) + int_len
        body = 2 * int_tlv
        return 1 + _der_length_size(body) + body
    raise SigningKeyError(f"Unsupported key type: {type(key).__name__}")


@dataclass(frozen=True)
class Signer:
    key: PrivateKey

    @property
    def scheme(self) -> str:
        return "RSA-PKCS1v15" if isinstance(self.key, rsa.RSAPrivateKey) else "ECDSA"

    @property
    def max_signature_size(self) -> int:
        return max_signature_size(self.key)

    def sign(self, digest: bytes) -> bytes:
        if isinstance(self.key, rsa.RSAPrivateKey):
            return self.key.sign(digest, padding.PKCS1v15(), hashes.SHA384())
        return self.key.sign(digest, ec.ECDSA(hashes.SHA384()))


@dataclass(frozen=True)
class Verifier:
    key: PublicKey

    def verify(self, digest: bytes, signature: bytes) -> None:
        """Raise SignatureError unless *signature* is valid for *digest*."""
        try:
            if isinstance(self.key, rsa.RSAPublicKey):
                self.key.verify(signature, digest, padding.PKCS1v15(), hashes.SHA384())
            else:
                self.key.verify(signature, digest, ec.ECDSA(hashes.SHA384()))
        except InvalidSignature as exc:
            raise SignatureError("Signature does not match the archive digest") from exc


def _check_supported(key) -> None:
    if not isinstance(
        key,
        (
            rsa.RSAPrivateKey,
            rsa.RSAPublicKey,
            ec.EllipticCurvePrivateKey,
            ec.EllipticCurvePublicKey,
        ),
    ):
        raise SigningKeyError(f"Unsupported key type: {type(key).__name__}")


def load_signer(source: str | bytes | Path, password: str | None = None) -> Signer:
    pem = resolve_pem(source)
    try:
        key = serialization.load_pem_private_key(
            pem, password=password.encode("utf-8") if password else None
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningKeyError(f"Could not load private key: {exc}") from exc
    _check_supported(key)
    if isinstance(key, rsa.RSAPrivateKey) and max_signature_size(key) < MIN_RSA_KEY_BYTES:
        raise SigningKeyError(
            f"RSA key of {key.key_size} bits is too small for SHA-384 PKCS#1 v1.5 signatures"
        )
    return Signer(key)


def load_verifier(source: str | bytes | Path) -> Verifier:
    """Load a public key; a private key PEM is accepted and its public half used."""
    pem = resolve_pem(source)
    try:
        key = serialization.load_pem_public_key(pem)
    except (ValueError, UnsupportedAlgorithm):
        try:
            key = serialization.load_pem_private_key(pem, password=None).public_key()
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise SigningKeyError(f"Could not load public key: {exc}") from exc
    _check_supported(key)
    return Verifier(key)

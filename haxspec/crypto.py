"""Abstract cryptographic primitives for protocol specifications.

Scalars, group elements, keys, nonces and tags are thin wrappers around
bytes. Operations that are given malformed inputs raise ValueError; a
failed authenticated decryption raises CryptoError.
"""

from __future__ import annotations

import hashlib
import hmac as _hmac
from dataclasses import dataclass
from enum import Enum
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, x448, x25519
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from haxspec.errors import CryptoError

TAG_LENGTH = 16
IV_LENGTH = 12


@dataclass(frozen=True)
class DHScalar:
    """A Diffie-Hellman scalar."""

    value: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> DHScalar:
        """Wrap bytes into a scalar without validating them."""
        return cls(bytes(data))


@dataclass(frozen=True)
class DHElement:
    """A Diffie-Hellman group element."""

    value: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> DHElement:
        """Wrap bytes into a group element without validating them."""
        return cls(bytes(data))


class DHGroup(Enum):
    """Diffie-Hellman groups."""

    X25519 = "X25519"
    X448 = "X448"
    P256 = "P256"
    P384 = "P384"
    P521 = "P521"


_MONTGOMERY = {
    DHGroup.X25519: (x25519.X25519PrivateKey, x25519.X25519PublicKey),
    DHGroup.X448: (x448.X448PrivateKey, x448.X448PublicKey),
}

_WEIERSTRASS = {
    DHGroup.P256: ec.SECP256R1,
    DHGroup.P384: ec.SECP384R1,
    DHGroup.P521: ec.SECP521R1,
}


def _coordinate_size(curve: ec.EllipticCurve) -> int:
    return (curve.key_size + 7) // 8


def _montgomery_private(group: DHGroup, scalar: DHScalar) -> Union[
    x25519.X25519PrivateKey, x448.X448PrivateKey
]:
    private_cls, _ = _MONTGOMERY[group]
    try:
        return private_cls.from_private_bytes(scalar.value)
    except ValueError as exc:
        raise ValueError(f"invalid {group.value} scalar") from exc


def _ec_private(group: DHGroup, scalar: DHScalar) -> ec.EllipticCurvePrivateKey:
    curve = _WEIERSTRASS[group]()
    if len(scalar.value) != _coordinate_size(curve):
        raise ValueError(
            f"a {group.value} scalar has {_coordinate_size(curve)} bytes, "
            f"got {len(scalar.value)}"
        )
    try:
        return ec.derive_private_key(int.from_bytes(scalar.value, "big"), curve)
    except ValueError as exc:
        raise ValueError(f"invalid {group.value} scalar") from exc


def _ec_public(group: DHGroup, element: DHElement) -> ec.EllipticCurvePublicKey:
    curve = _WEIERSTRASS[group]()
    data = element.value
    if len(data) == 2 * _coordinate_size(curve):
        data = b"\x04" + data
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(curve, data)
    except ValueError as exc:
        raise ValueError(f"invalid {group.value} element") from exc


def dh_scalar_multiply(group: DHGroup, scalar: DHScalar, element: DHElement) -> bytes:
    """Multiply ``element`` by ``scalar``; return the shared secret."""
    if group in _MONTGOMERY:
        _, public_cls = _MONTGOMERY[group]
        private = _montgomery_private(group, scalar)
        try:
            return private.exchange(public_cls.from_public_bytes(element.value))
        except ValueError as exc:
            raise ValueError(f"invalid {group.value} element") from exc
    private = _ec_private(group, scalar)
    return private.exchange(ec.ECDH(), _ec_public(group, element))


def dh_scalar_multiply_base(group: DHGroup, scalar: DHScalar) -> bytes:
    """Multiply the group generator by ``scalar``; return the public element.

    Points on the NIST curves are returned as ``x || y`` without a prefix.
    """
    if group in _MONTGOMERY:
        return (
            _montgomery_private(group, scalar)
            .public_key()
            .public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        )
    point = (
        _ec_private(group, scalar)
        .public_key()
        .public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
        )
    )
    return point[1:]


class AEADAlgorithm(Enum):
    """AEAD algorithms."""

    AES128_GCM = "Aes128Gcm"
    AES256_GCM = "Aes256Gcm"
    CHACHA20_POLY1305 = "Chacha20Poly1305"


_KEY_LENGTHS = {
    AEADAlgorithm.AES128_GCM: 16,
    AEADAlgorithm.AES256_GCM: 32,
    AEADAlgorithm.CHACHA20_POLY1305: 32,
}


@dataclass(frozen=True)
class AEADKey:
    """An AEAD key bound to its algorithm."""

    algorithm: AEADAlgorithm
    value: bytes

    @classmethod
    def from_bytes(cls, algorithm: AEADAlgorithm, data: bytes) -> AEADKey:
        """Build a key for ``algorithm``; raise ValueError on a wrong length."""
        expected = _KEY_LENGTHS[algorithm]
        if len(data) != expected:
            raise ValueError(
                f"a {algorithm.value} key has {expected} bytes, got {len(data)}"
            )
        return cls(algorithm, bytes(data))

    def _cipher(self) -> Union[AESGCM, ChaCha20Poly1305]:
        if self.algorithm is AEADAlgorithm.CHACHA20_POLY1305:
            return ChaCha20Poly1305(self.value)
        return AESGCM(self.value)


@dataclass(frozen=True)
class AEADIV:
    """An AEAD nonce."""

    value: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> AEADIV:
        """Build a nonce; raise ValueError unless it has 12 bytes."""
        if len(data) != IV_LENGTH:
            raise ValueError(f"an AEAD nonce has {IV_LENGTH} bytes, got {len(data)}")
        return cls(bytes(data))


@dataclass(frozen=True)
class AEADTag:
    """An AEAD authentication tag."""

    value: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> AEADTag:
        """Build a tag; raise ValueError unless it has 16 bytes."""
        if len(data) != TAG_LENGTH:
            raise ValueError(f"an AEAD tag has {TAG_LENGTH} bytes, got {len(data)}")
        return cls(bytes(data))


def aead_encrypt(
    key: AEADKey, iv: AEADIV, aad: bytes, plain: bytes
) -> tuple[bytes, bytes]:
    """Encrypt ``plain``; return ``(ciphertext, tag)``."""
    sealed = key._cipher().encrypt(iv.value, bytes(plain), bytes(aad))
    return sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]


def aead_decrypt(
    key: AEADKey, iv: AEADIV, aad: bytes, cip: bytes, tag: AEADTag
) -> bytes:
    """Decrypt ``cip``; raise CryptoError when authentication fails."""
    try:
        return key._cipher().decrypt(iv.value, bytes(cip) + tag.value, bytes(aad))
    except InvalidTag:
        raise CryptoError() from None


class HashAlgorithm(Enum):
    """Hash algorithms."""

    SHA1 = "sha1"
    SHA224 = "sha224"
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"
    BLAKE2S = "blake2s"
    BLAKE2B = "blake2b"
    SHA3_224 = "sha3_224"
    SHA3_256 = "sha3_256"
    SHA3_384 = "sha3_384"
    SHA3_512 = "sha3_512"


def digest(algorithm: HashAlgorithm, data: bytes) -> bytes:
    """Hash ``data`` with ``algorithm``."""
    return hashlib.new(algorithm.value, bytes(data)).digest()


class HMACAlgorithm(Enum):
    """Hash functions available for HMAC."""

    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"


def hmac(algorithm: HMACAlgorithm, key: bytes, data: bytes) -> bytes:
    """Compute the full-length HMAC of ``data`` under ``key``."""
    return _hmac.new(bytes(key), bytes(data), algorithm.value).digest()
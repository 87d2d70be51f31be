"""Password-based encryption for PKCS#8 and PKCS#12 structures.

Two families of schemes are supported:

* **PBES2** (RFC 8018): PBKDF2-HMAC-SHA256 key derivation followed by a CBC
  cipher (AES-128/192/256 or 3-key Triple DES).
* **PKCS#12 v1 PBE** (RFC 7292 appendix B/C): the SHA-1 based PKCS#12 key
  derivation function followed by RC4, RC2-CBC or Triple DES-CBC.

Schemes are identified by their ``asn1crypto`` algorithm names (for example
``"aes256_cbc"`` or ``"pkcs12_sha1_tripledes_3key"``) so that the
:class:`asn1crypto.algos.EncryptionAlgorithm` produced here can be embedded
directly into ``EncryptedPrivateKeyInfo`` or CMS ``EncryptedData`` values.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from asn1crypto import algos, core, keys
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.decrepit.ciphers import algorithms as legacy_algorithms
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from certvault.crypto.context import CryptoContext
from certvault.errors import DecodeError, InvalidPasswordError

logger = logging.getLogger(__name__)

# PKCS#12 KDF purpose identifiers (RFC 7292 B.3)
KDF_KEY_MATERIAL = 1
KDF_IV_MATERIAL = 2
KDF_MAC_MATERIAL = 3


@dataclass(frozen=True)
class _CipherSpec:
    cipher: str
    key_length: int
    iv_length: int


PBES2_SCHEMES: dict[str, _CipherSpec] = {
    "aes128_cbc": _CipherSpec("aes", 16, 16),
    "aes192_cbc": _CipherSpec("aes", 24, 16),
    "aes256_cbc": _CipherSpec("aes", 32, 16),
    "tripledes_3key": _CipherSpec("tripledes", 24, 8),
}

PKCS12_PBE_SCHEMES: dict[str, _CipherSpec] = {
    "pkcs12_sha1_rc4_128": _CipherSpec("rc4", 16, 0),
    "pkcs12_sha1_rc4_40": _CipherSpec("rc4", 5, 0),
    "pkcs12_sha1_tripledes_3key": _CipherSpec("tripledes", 24, 8),
    "pkcs12_sha1_tripledes_2key": _CipherSpec("tripledes", 16, 8),
    "pkcs12_sha1_rc2_128": _CipherSpec("rc2", 16, 8),
    "pkcs12_sha1_rc2_40": _CipherSpec("rc2", 5, 8),
}

_PRF_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


# ------------------------------------------------------------------
# Key derivation
# ------------------------------------------------------------------


def bmp_password(password: str) -> bytes:
    """Encode *password* as a null-terminated BMPString (PKCS#12 convention)."""
    return password.encode("utf-16-be") + b"\x00\x00"


def _fill(data: bytes, block_size: int) -> bytes:
    if not data:
        return b""
    length = block_size * ((len(data) + block_size - 1) // block_size)
    return (data * (length // len(data) + 1))[:length]


def pkcs12_kdf(
    hash_algorithm: hashes.HashAlgorithm,
    password: bytes,
    salt: bytes,
    purpose: int,
    iterations: int,
    length: int,
) -> bytes:
    """Derive *length* bytes with the PKCS#12 key derivation function.

    Parameters
    ----------
    hash_algorithm:
        Hash used by the derivation (SHA-1 for PBE schemes, the MAC digest
        for integrity keys).
    password:
        Password already encoded with :func:`bmp_password`.
    salt:
        Salt bytes.
    purpose:
        One of :data:`KDF_KEY_MATERIAL`, :data:`KDF_IV_MATERIAL` or
        :data:`KDF_MAC_MATERIAL`.
    iterations:
        Iteration count.
    length:
        Number of bytes to derive.
    """
    block_size = hash_algorithm.block_size
    if block_size is None:
        raise ValueError(f"{hash_algorithm.name} cannot be used with the PKCS#12 KDF")
    diversifier = bytes([purpose]) * block_size
    state = bytearray(_fill(salt, block_size) + _fill(password, block_size))
    modulus = 1 << (block_size * 8)

    output = b""
    while len(output) < length:
        digest = diversifier + bytes(state)
        for _ in range(iterations):
            hasher = hashes.Hash(hash_algorithm)
            hasher.update(digest)
            digest = hasher.finalize()
        output += digest
        if len(output) >= length:
            break
        increment = int.from_bytes(_fill(digest, block_size), "big") + 1
        for offset in range(0, len(state), block_size):
            chunk = int.from_bytes(state[offset : offset + block_size], "big")
            chunk = (chunk + increment) % modulus
            state[offset : offset + block_size] = chunk.to_bytes(block_size, "big")
    return output[:length]


def pkcs12_mac(
    data: bytes,
    password: str,
    salt: bytes,
    iterations: int,
    hash_algorithm: hashes.HashAlgorithm | None = None,
) -> bytes:
    """Compute the PKCS#12 integrity HMAC over *data*."""
    hash_algorithm = hash_algorithm or hashes.SHA256()
    key = pkcs12_kdf(
        hash_algorithm,
        bmp_password(password),
        salt,
        KDF_MAC_MATERIAL,
        iterations,
        hash_algorithm.digest_size,
    )
    mac = hmac.HMAC(key, hash_algorithm)
    mac.update(data)
    return mac.finalize()


# ------------------------------------------------------------------
# Ciphers
# ------------------------------------------------------------------


def _build_cipher(spec: _CipherSpec, key: bytes, iv: bytes) -> Cipher:
    if spec.cipher == "aes":
        return Cipher(algorithms.AES(key), modes.CBC(iv))
    if spec.cipher == "tripledes":
        return Cipher(legacy_algorithms.TripleDES(key), modes.CBC(iv))
    if spec.cipher == "rc2":
        return Cipher(legacy_algorithms.RC2(key), modes.CBC(iv))
    if spec.cipher == "rc4":
        return Cipher(legacy_algorithms.ARC4(key), None)
    raise ValueError(f"Unknown cipher {spec.cipher!r}")


def _encrypt(spec: _CipherSpec, key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    cipher = _build_cipher(spec, key, iv)
    if spec.iv_length:
        padder = padding.PKCS7(cipher.algorithm.block_size).padder()  # type: ignore[attr-defined]
        plaintext = padder.update(plaintext) + padder.finalize()
    encryptor = cipher.encryptor()
    return encryptor.update(plaintext) + encryptor.finalize()


def _decrypt(spec: _CipherSpec, key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    cipher = _build_cipher(spec, key, iv)
    decryptor = cipher.decryptor()
    plaintext = decryptor.update(ciphertext) + decryptor.finalize()
    if spec.iv_length:
        unpadder = padding.PKCS7(cipher.algorithm.block_size).unpadder()  # type: ignore[attr-defined]
        try:
            plaintext = unpadder.update(plaintext) + unpadder.finalize()
        except ValueError as exc:
            raise InvalidPasswordError("Wrong password or corrupted data") from exc
    return plaintext


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


def is_supported_scheme(scheme: str) -> bool:
    """Return True if *scheme* names a PBES2 or PKCS#12 PBE cipher."""
    return scheme in PBES2_SCHEMES or scheme in PKCS12_PBE_SCHEMES


def encrypt(
    plaintext: bytes,
    password: str,
    scheme: str,
    context: CryptoContext,
) -> tuple[algos.EncryptionAlgorithm, bytes]:
    """Encrypt *plaintext* under *password* with the named *scheme*.

    Returns
    -------
    tuple
        The ``EncryptionAlgorithm`` identifier describing the scheme and its
        parameters, and the ciphertext.

    Raises
    ------
    ValueError
        If *scheme* is unknown or the key length is rejected by the cipher.
    cryptography.exceptions.UnsupportedAlgorithm
        If the linked crypto library cannot provide the cipher.
    """
    salt = context.new_salt()
    iterations = context.pbe_iterations

    if scheme in PBES2_SCHEMES:
        spec = PBES2_SCHEMES[scheme]
        iv = context.random_bytes(spec.iv_length)
        key = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=spec.key_length,
            salt=salt,
            iterations=iterations,
        ).derive(password.encode("utf-8"))
        algorithm = algos.EncryptionAlgorithm(
            {
                "algorithm": "pbes2",
                "parameters": {
                    "key_derivation_func": {
                        "algorithm": "pbkdf2",
                        "parameters": {
                            "salt": algos.Pbkdf2Salt(name="specified", value=salt),
                            "iteration_count": iterations,
                            "prf": {"algorithm": "sha256", "parameters": core.Null()},
                        },
                    },
                    "encryption_scheme": {
                        "algorithm": scheme,
                        "parameters": core.OctetString(iv),
                    },
                },
            }
        )
        return algorithm, _encrypt(spec, key, iv, plaintext)

    if scheme in PKCS12_PBE_SCHEMES:
        spec = PKCS12_PBE_SCHEMES[scheme]
        encoded = bmp_password(password)
        key = pkcs12_kdf(hashes.SHA1(), encoded, salt, KDF_KEY_MATERIAL, iterations, spec.key_length)
        iv = b""
        if spec.iv_length:
            iv = pkcs12_kdf(hashes.SHA1(), encoded, salt, KDF_IV_MATERIAL, iterations, spec.iv_length)
        algorithm = algos.EncryptionAlgorithm(
            {
                "algorithm": scheme,
                "parameters": {"salt": salt, "iterations": iterations},
            }
        )
        return algorithm, _encrypt(spec, key, iv, plaintext)

    raise ValueError(f"Unsupported password-based encryption scheme {scheme!r}")


def decrypt(algorithm: algos.EncryptionAlgorithm, ciphertext: bytes, password: str) -> bytes:
    """Decrypt *ciphertext* described by *algorithm* with *password*.

    Raises
    ------
    InvalidPasswordError
        If the padding check fails after decryption.
    DecodeError
        If the scheme is not supported, or its parameters are malformed or
        rejected by the linked crypto library.
    """
    try:
        return _decrypt_scheme(algorithm, ciphertext, password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise DecodeError(f"Unusable encryption parameters: {exc}") from exc


def _decrypt_scheme(algorithm: algos.EncryptionAlgorithm, ciphertext: bytes, password: str) -> bytes:
    scheme = algorithm["algorithm"].native

    if scheme == "pbes2":
        params = algorithm["parameters"]
        kdf = params["key_derivation_func"]
        if kdf["algorithm"].native != "pbkdf2":
            raise DecodeError(f"Unsupported key derivation function {kdf['algorithm'].native!r}")
        kdf_params = kdf["parameters"]
        prf_name = kdf_params["prf"]["algorithm"].native
        if prf_name not in _PRF_HASHES:
            raise DecodeError(f"Unsupported PBKDF2 pseudo-random function {prf_name!r}")
        encryption_scheme = params["encryption_scheme"]
        cipher_name = encryption_scheme["algorithm"].native
        if cipher_name not in PBES2_SCHEMES:
            raise DecodeError(f"Unsupported PBES2 cipher {cipher_name!r}")
        spec = PBES2_SCHEMES[cipher_name]
        key = PBKDF2HMAC(
            algorithm=_PRF_HASHES[prf_name](),
            length=spec.key_length,
            salt=kdf_params["salt"].native,
            iterations=kdf_params["iteration_count"].native,
        ).derive(password.encode("utf-8"))
        return _decrypt(spec, key, encryption_scheme["parameters"].native, ciphertext)

    if scheme in PKCS12_PBE_SCHEMES:
        spec = PKCS12_PBE_SCHEMES[scheme]
        params = algorithm["parameters"]
        salt = params["salt"].native
        iterations = params["iterations"].native
        encoded = bmp_password(password)
        key = pkcs12_kdf(hashes.SHA1(), encoded, salt, KDF_KEY_MATERIAL, iterations, spec.key_length)
        iv = b""
        if spec.iv_length:
            iv = pkcs12_kdf(hashes.SHA1(), encoded, salt, KDF_IV_MATERIAL, iterations, spec.iv_length)
        return _decrypt(spec, key, iv, ciphertext)

    raise DecodeError(f"Unsupported encryption scheme {scheme!r}")


def encrypt_private_key_info(
    private_key_info: bytes,
    password: str,
    scheme: str,
    context: CryptoContext,
) -> bytes:
    """Wrap DER ``PrivateKeyInfo`` bytes into DER ``EncryptedPrivateKeyInfo``."""
    algorithm, ciphertext = encrypt(private_key_info, password, scheme, context)
    logger.debug("Encrypted private key with %s (%d iterations)", scheme, context.pbe_iterations)
    return keys.EncryptedPrivateKeyInfo(
        {"encryption_algorithm": algorithm, "encrypted_data": ciphertext}
    ).dump()


def decrypt_private_key_info(encrypted_private_key_info: bytes, password: str) -> bytes:
    """Unwrap DER ``EncryptedPrivateKeyInfo`` and return DER ``PrivateKeyInfo``.

    Raises
    ------
    InvalidPasswordError
        If the password is wrong or the decrypted content is not a key.
    DecodeError
        If the structure itself cannot be parsed.
    """
    try:
        info = keys.EncryptedPrivateKeyInfo.load(encrypted_private_key_info)
        algorithm = info["encryption_algorithm"]
        ciphertext = info["encrypted_data"].native
    except (ValueError, TypeError) as exc:
        raise DecodeError("Not an encrypted PKCS#8 structure") from exc

    plaintext = decrypt(algorithm, ciphertext, password)
    try:
        keys.PrivateKeyInfo.load(plaintext).native
    except (ValueError, TypeError) as exc:
        raise InvalidPasswordError("Wrong password or corrupted data") from exc
    return plaintext

"""Shared key and certificate fixtures.

Key generation is slow, so keys and certificates are created once per
session and reused across test modules.
"""
from __future__ import annotations

import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.x509.oid import NameOID

from certvault.credentials.bundle import CredentialBundle, KeyPair
from certvault.crypto.context import CryptoContext
from certvault.crypto.digest import signing_hash_for


def make_name(common_name: str, organization: str = "Halimede Test") -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
        ]
    )


def make_certificate(
    subject: x509.Name,
    public_key,  # type: ignore[no-untyped-def]
    issuer: x509.Name,
    issuer_key,  # type: ignore[no-untyped-def]
    is_ca: bool = False,
) -> x509.Certificate:
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
        .sign(issuer_key, signing_hash_for(issuer_key))
    )


@pytest.fixture(scope="session")
def root_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def root_cert(root_key: rsa.RSAPrivateKey) -> x509.Certificate:
    name = make_name("Test Root CA")
    return make_certificate(name, root_key.public_key(), name, root_key, is_ca=True)


@pytest.fixture(scope="session")
def leaf_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def leaf_cert(
    leaf_key: rsa.RSAPrivateKey, root_key: rsa.RSAPrivateKey, root_cert: x509.Certificate
) -> x509.Certificate:
    return make_certificate(
        make_name("leaf.example.com"), leaf_key.public_key(), root_cert.subject, root_key
    )


@pytest.fixture(scope="session")
def other_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_cert(other_key: rsa.RSAPrivateKey) -> x509.Certificate:
    name = make_name("other.example.com")
    return make_certificate(name, other_key.public_key(), name, other_key)


@pytest.fixture(scope="session")
def ec_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def ec_cert(ec_key: ec.EllipticCurvePrivateKey) -> x509.Certificate:
    name = make_name("ec.example.com")
    return make_certificate(name, ec_key.public_key(), name, ec_key)


@pytest.fixture(scope="session")
def ed25519_key() -> ed25519.Ed25519PrivateKey:
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture(scope="session")
def ed25519_cert(ed25519_key: ed25519.Ed25519PrivateKey) -> x509.Certificate:
    name = make_name("ed25519.example.com")
    return make_certificate(name, ed25519_key.public_key(), name, ed25519_key)


@pytest.fixture()
def crypto_context() -> CryptoContext:
    return CryptoContext(pbe_iterations=64, mac_iterations=64, challenge_size=256)


@pytest.fixture()
def leaf_bundle(
    leaf_cert: x509.Certificate, root_cert: x509.Certificate, leaf_key: rsa.RSAPrivateKey
) -> CredentialBundle:
    return CredentialBundle(
        certificate_chain=(leaf_cert, root_cert),
        key_pair=KeyPair(private_key=leaf_key, public_key=leaf_key.public_key()),
    )

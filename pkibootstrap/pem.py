# pkibootstrap/pem.py
from __future__ import annotations

from typing import List

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)

from .errors import EncodingError
from .keys import KeyPair

BEGIN_CERT = b"-----BEGIN CERTIFICATE-----"
END_CERT = b"-----END CERTIFICATE-----"


def _iter_blocks(data: bytes, begin: bytes, end: bytes) -> List[bytes]:
    blocks: List[bytes] = []
    i = 0
    while True:
        s = data.find(begin, i)
        if s == -1:
            break
        e = data.find(end, s)
        if e == -1:
            break
        e2 = e + len(end)
        blocks.append(data[s:e2])
        i = e2
    return blocks


def encode_cert_pem(cert: x509.Certificate) -> bytes:
    try:
        return cert.public_bytes(Encoding.PEM)
    except Exception as exc:
        raise EncodingError(f"unable to encode certificate: {exc}") from exc


def encode_key_pem(key_pair: KeyPair) -> bytes:
    """
    Traditional unencrypted encodings: PKCS#1 ``RSA PRIVATE KEY`` for RSA and
    SEC1 ``EC PRIVATE KEY`` for ECDSA.
    """
    key = key_pair.private_key
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise EncodingError(f"unsupported private key type: {key.__class__.__name__}")
    try:
        return key.private_bytes(
            encoding=Encoding.PEM,
            format=PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=NoEncryption(),
        )
    except Exception as exc:
        raise EncodingError(f"unable to marshal {key_pair.algorithm.value} private key: {exc}") from exc


def load_cert_pem(data: bytes) -> x509.Certificate:
    """Parse the first CERTIFICATE block found in ``data``."""
    blocks = _iter_blocks(data, BEGIN_CERT, END_CERT)
    if not blocks:
        raise EncodingError("no CERTIFICATE block found")
    try:
        return x509.load_pem_x509_certificate(blocks[0])
    except ValueError as exc:
        raise EncodingError(f"malformed certificate block: {exc}") from exc

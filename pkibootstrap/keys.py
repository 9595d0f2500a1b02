# pkibootstrap/keys.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from cryptography.hazmat.primitives.asymmetric import ec, rsa

from .errors import KeyGenerationError

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]
PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey]


class KeyAlgorithm(str, Enum):
    RSA = "RSA"
    ECDSA = "ECDSA"

    @classmethod
    def parse(cls, value: "str | KeyAlgorithm | None") -> "KeyAlgorithm":
        if value is None:
            return cls.RSA
        if isinstance(value, KeyAlgorithm):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise KeyGenerationError(f"unsupported key algorithm: {value!r}") from None


@dataclass(frozen=True)
class KeyPair:
    algorithm: KeyAlgorithm
    private_key: PrivateKey

    @property
    def public_key(self) -> PublicKey:
        return self.private_key.public_key()


class KeyGenerator:
    """
    Produces signing key pairs. Passed explicitly to the CA factory and the
    issuer so tests can swap in a deterministic generator.
    """

    def generate(self, algorithm: "KeyAlgorithm | str | None" = KeyAlgorithm.RSA) -> KeyPair:
        algo = KeyAlgorithm.parse(algorithm)
        try:
            if algo is KeyAlgorithm.ECDSA:
                key: PrivateKey = ec.generate_private_key(ec.SECP256R1())
            else:
                key = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_SIZE)
        except Exception as exc:
            raise KeyGenerationError(f"unable to create {algo.value} private key: {exc}") from exc
        return KeyPair(algorithm=algo, private_key=key)

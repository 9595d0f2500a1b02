from __future__ import annotations

import datetime as dt
import functools
import threading
from typing import Dict, Optional, Tuple

from cryptography import x509

from pkibootstrap.altnames import AltNames
from pkibootstrap.certs import CertsConfig, new_cert_config
from pkibootstrap.errors import KeyGenerationError
from pkibootstrap.keys import KeyAlgorithm, KeyGenerator, KeyPair

POOL_SIZE = 8
UTC = dt.timezone.utc


@functools.lru_cache(maxsize=None)
def key_pool(algorithm: KeyAlgorithm) -> Tuple[KeyPair, ...]:
    gen = KeyGenerator()
    return tuple(gen.generate(algorithm) for _ in range(POOL_SIZE))


class StubKeyGenerator(KeyGenerator):
    """Hands out pre-generated keys in a fixed order and can fail on demand."""

    def __init__(self, fail_on_call: Optional[int] = None, fail_on_algorithm: Optional[KeyAlgorithm] = None) -> None:
        self.calls = 0
        self.fail_on_call = fail_on_call
        self.fail_on_algorithm = fail_on_algorithm
        self._lock = threading.Lock()

    def generate(self, algorithm=KeyAlgorithm.RSA) -> KeyPair:
        algo = KeyAlgorithm.parse(algorithm)
        with self._lock:
            self.calls += 1
            n = self.calls
        if n == self.fail_on_call or algo is self.fail_on_algorithm:
            raise KeyGenerationError(f"induced failure on call {n}")
        pool = key_pool(algo)
        return pool[(n - 1) % len(pool)]


def leaf_configs(algorithm: KeyAlgorithm = KeyAlgorithm.ECDSA) -> Dict[str, CertsConfig]:
    svc = "karmada-system.svc.cluster.local"
    return {
        "etcd-server": new_cert_config(
            "karmada-etcd-server",
            alt_names=AltNames.of(["etcd.karmada-system.svc", "localhost", "etcd.karmada-system.svc"], ["127.0.0.1"]),
            algorithm=algorithm,
        ),
        "etcd-client": new_cert_config("karmada-etcd-client", algorithm=algorithm),
        "karmada": new_cert_config(
            "system:admin",
            org=["system:masters"],
            alt_names=AltNames.of([f"karmada-apiserver.{svc}", "localhost"], ["10.0.0.2", "127.0.0.1", "10.0.0.2"]),
            algorithm=algorithm,
        ),
        "apiserver": new_cert_config(
            "karmada-apiserver",
            alt_names=AltNames.of(["kubernetes.default.svc", "kubernetes", "localhost"], ["127.0.0.1"]),
            not_after=dt.datetime(2035, 6, 1, tzinfo=UTC),
            algorithm=algorithm,
        ),
        "front-proxy-client": new_cert_config("front-proxy-client", algorithm=algorithm),
    }


def not_before(cert: x509.Certificate) -> dt.datetime:
    return cert.not_valid_before_utc


def not_after(cert: x509.Certificate) -> dt.datetime:
    return cert.not_valid_after_utc

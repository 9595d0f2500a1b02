# pkibootstrap/bundle.py
from __future__ import annotations

import datetime as dt
import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from cryptography import x509

from .certs import DURATION_365D, CertificateAuthorityFactory, CertificateIssuer, CertsConfig
from .errors import ValidationError
from .keys import KeyAlgorithm, KeyGenerator, KeyPair
from .pem import encode_cert_pem, encode_key_pem

logger = logging.getLogger(__name__)

Bundle = Dict[str, bytes]


@dataclass(frozen=True)
class Hierarchy:
    name: str
    common_name: str
    leaves: Tuple[str, ...]


# bundle name of the CA, CA common name, bundle names of the leaves it signs
HIERARCHIES: Tuple[Hierarchy, ...] = (
    Hierarchy("ca", "karmada", ("karmada", "apiserver")),
    Hierarchy("front-proxy-ca", "front-proxy-ca", ("front-proxy-client",)),
    Hierarchy("etcd-ca", "etcd-ca", ("etcd-server", "etcd-client")),
)

BUNDLE_NAMES: Tuple[str, ...] = tuple(
    name for h in HIERARCHIES for name in (h.name,) + h.leaves
)


def _put(data: Bundle, name: str, cert: x509.Certificate, key: KeyPair) -> None:
    data[f"{name}.key"] = encode_key_pem(key)
    data[f"{name}.crt"] = encode_cert_pem(cert)


class BundleOrchestrator:
    """
    Builds every CA hierarchy and its leaves into one bundle.

    Each hierarchy writes into its own dict; the merged mapping is only
    returned once all of them succeeded, so callers never see a partial
    bundle. With ``max_workers > 1`` hierarchies are built on a thread pool.
    """

    def __init__(
        self,
        key_generator: Optional[KeyGenerator] = None,
        max_workers: int = 1,
        ca_algorithm: KeyAlgorithm = KeyAlgorithm.RSA,
        ca_validity: dt.timedelta = DURATION_365D,
        hierarchies: Tuple[Hierarchy, ...] = HIERARCHIES,
    ) -> None:
        keys = key_generator or KeyGenerator()
        self._ca_factory = CertificateAuthorityFactory(keys, ca_validity)
        self._issuer = CertificateIssuer(keys)
        self._max_workers = max(1, max_workers)
        self._ca_algorithm = ca_algorithm
        self._hierarchies = hierarchies

    def generate_bundle(
        self,
        etcd_server: CertsConfig,
        etcd_client: CertsConfig,
        karmada: CertsConfig,
        apiserver: CertsConfig,
        front_proxy_client: CertsConfig,
    ) -> Bundle:
        return self.generate({
            "etcd-server": etcd_server,
            "etcd-client": etcd_client,
            "karmada": karmada,
            "apiserver": apiserver,
            "front-proxy-client": front_proxy_client,
        })

    def generate(self, leaf_configs: Mapping[str, CertsConfig]) -> Bundle:
        missing = [leaf for h in self._hierarchies for leaf in h.leaves if leaf not in leaf_configs]
        if missing:
            raise ValidationError(f"missing certificate config for: {', '.join(missing)}")

        if self._max_workers == 1 or len(self._hierarchies) == 1:
            slices = [self._build_hierarchy(h, leaf_configs) for h in self._hierarchies]
        else:
            slices = self._build_parallel(leaf_configs)

        bundle: Bundle = {}
        for part in slices:
            bundle.update(part)
        logger.info("generated certificate bundle with %d entries", len(bundle))
        return bundle

    def _build_parallel(self, leaf_configs: Mapping[str, CertsConfig]) -> list:
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="pki") as pool:
            futures = [pool.submit(self._build_hierarchy, h, leaf_configs) for h in self._hierarchies]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for f in pending:
                f.cancel()
            for f in futures:
                if f in done and f.exception() is not None:
                    raise f.exception()  # type: ignore[misc]
            return [f.result() for f in futures]

    def _build_hierarchy(self, hierarchy: Hierarchy, leaf_configs: Mapping[str, CertsConfig]) -> Bundle:
        part: Bundle = {}
        ca_cert, ca_key = self._ca_factory.new_certificate_authority(
            CertsConfig(common_name=hierarchy.common_name, public_key_algorithm=self._ca_algorithm)
        )
        _put(part, hierarchy.name, ca_cert, ca_key)
        logger.debug("issued CA %s (serial %x)", hierarchy.name, ca_cert.serial_number)

        for leaf in hierarchy.leaves:
            cert, key = self._issuer.new_cert_and_key(ca_cert, ca_key, leaf_configs[leaf])
            _put(part, leaf, cert, key)
            logger.debug("issued %s under %s (serial %x)", leaf, hierarchy.name, cert.serial_number)
        return part


def gen_certs(
    etcd_server: CertsConfig,
    etcd_client: CertsConfig,
    karmada: CertsConfig,
    apiserver: CertsConfig,
    front_proxy_client: CertsConfig,
    key_generator: Optional[KeyGenerator] = None,
) -> Bundle:
    """Create the three CAs and sign every control-plane certificate under them."""
    return BundleOrchestrator(key_generator).generate_bundle(
        etcd_server, etcd_client, karmada, apiserver, front_proxy_client
    )

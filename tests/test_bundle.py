import pytest
from cryptography import x509

from _util import StubKeyGenerator, leaf_configs, not_after, not_before
from pkibootstrap.bundle import BUNDLE_NAMES, HIERARCHIES, BundleOrchestrator, gen_certs
from pkibootstrap.certs import DURATION_365D
from pkibootstrap.errors import CAGenerationError, KeyGenerationError, ValidationError
from pkibootstrap.keys import KeyAlgorithm
from pkibootstrap.pem import load_cert_pem
from pkibootstrap.x509meta import is_ca, san_of, verify_issued_by

EXPECTED_KEYS = {
    "ca.key", "ca.crt",
    "karmada.key", "karmada.crt",
    "apiserver.key", "apiserver.crt",
    "front-proxy-ca.key", "front-proxy-ca.crt",
    "front-proxy-client.key", "front-proxy-client.crt",
    "etcd-ca.key", "etcd-ca.crt",
    "etcd-server.key", "etcd-server.crt",
    "etcd-client.key", "etcd-client.crt",
}


def _generate(orchestrator=None):
    cfg = leaf_configs()
    orchestrator = orchestrator or BundleOrchestrator(StubKeyGenerator())
    return orchestrator.generate_bundle(
        cfg["etcd-server"], cfg["etcd-client"], cfg["karmada"], cfg["apiserver"], cfg["front-proxy-client"]
    )


def _certs(bundle):
    return {name: load_cert_pem(bundle[f"{name}.crt"]) for name in BUNDLE_NAMES}


def test_bundle_has_fixed_key_set():
    bundle = _generate()
    assert set(bundle) == EXPECTED_KEYS
    for name, data in bundle.items():
        assert data.startswith(b"-----BEGIN ")
        assert data.rstrip().endswith(b"-----")


def test_each_leaf_chains_to_its_own_ca():
    certs = _certs(_generate())
    for h in HIERARCHIES:
        ca = certs[h.name]
        assert is_ca(ca) and verify_issued_by(ca, ca)
        for leaf in h.leaves:
            assert verify_issued_by(certs[leaf], ca)
            assert not_before(certs[leaf]) == not_before(ca)
    assert not verify_issued_by(certs["etcd-server"], certs["ca"])


def test_ca_common_names():
    certs = _certs(_generate())
    cns = {h.name: certs[h.name].subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)[0].value for h in HIERARCHIES}
    assert cns == {"ca": "karmada", "front-proxy-ca": "front-proxy-ca", "etcd-ca": "etcd-ca"}


def test_leaf_round_trip_matches_config():
    cfg = leaf_configs()
    certs = _certs(_generate())

    karmada = certs["karmada"]
    assert karmada.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)[0].value == "system:admin"
    assert san_of(karmada) == {
        "dns_names": ["karmada-apiserver.karmada-system.svc.cluster.local", "localhost"],
        "ips": ["10.0.0.2", "127.0.0.1"],
    }
    assert not_after(karmada) == not_before(karmada) + DURATION_365D
    assert not_after(certs["apiserver"]) == cfg["apiserver"].not_after
    assert san_of(certs["etcd-server"])["dns_names"] == ["etcd.karmada-system.svc", "localhost"]


def test_serials_differ_across_bundles():
    serials = [c.serial_number for b in (_generate(), _generate()) for c in _certs(b).values()]
    assert len(set(serials)) == len(serials) == 16


def test_parallel_generation():
    bundle = _generate(BundleOrchestrator(StubKeyGenerator(), max_workers=3))
    assert set(bundle) == EXPECTED_KEYS
    certs = _certs(bundle)
    assert verify_issued_by(certs["front-proxy-client"], certs["front-proxy-ca"])


def test_failure_on_third_identity_returns_nothing():
    keys = StubKeyGenerator(fail_on_call=3)
    result = None
    with pytest.raises(KeyGenerationError):
        result = _generate(BundleOrchestrator(keys))
    assert result is None
    assert keys.calls == 3


def test_ca_failure_aborts_bundle():
    with pytest.raises(CAGenerationError):
        _generate(BundleOrchestrator(StubKeyGenerator(fail_on_call=1)))


def test_parallel_failure_aborts_bundle():
    cfg = leaf_configs(KeyAlgorithm.RSA)
    cfg["etcd-client"].public_key_algorithm = KeyAlgorithm.ECDSA
    orchestrator = BundleOrchestrator(StubKeyGenerator(fail_on_algorithm=KeyAlgorithm.ECDSA), max_workers=3)
    with pytest.raises(KeyGenerationError):
        orchestrator.generate(cfg)


def test_invalid_leaf_config_aborts_bundle():
    cfg = leaf_configs()
    cfg["front-proxy-client"].usages = []
    with pytest.raises(ValidationError):
        BundleOrchestrator(StubKeyGenerator()).generate(cfg)


def test_missing_leaf_config():
    cfg = leaf_configs()
    del cfg["apiserver"]
    with pytest.raises(ValidationError):
        BundleOrchestrator(StubKeyGenerator()).generate(cfg)


def test_gen_certs_entry_point():
    cfg = leaf_configs()
    bundle = gen_certs(
        cfg["etcd-server"], cfg["etcd-client"], cfg["karmada"], cfg["apiserver"], cfg["front-proxy-client"],
        key_generator=StubKeyGenerator(),
    )
    assert set(bundle) == EXPECTED_KEYS

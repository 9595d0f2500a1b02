# pkibootstrap/certs.py
from __future__ import annotations

import datetime as dt
import secrets
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .altnames import AltNames, remove_duplicate_alt_names
from .errors import CAGenerationError, KeyGenerationError, SigningError, ValidationError
from .keys import KeyAlgorithm, KeyGenerator, KeyPair

DURATION_365D = dt.timedelta(days=365)
# Largest serial the issuer draws: 2**63 - 1.
MAX_SERIAL = (1 << 63) - 1


@dataclass
class CertsConfig:
    common_name: str
    organization: List[str] = field(default_factory=list)
    alt_names: AltNames = field(default_factory=AltNames)
    usages: List[x509.ObjectIdentifier] = field(default_factory=list)
    not_after: Optional[dt.datetime] = None
    public_key_algorithm: KeyAlgorithm = KeyAlgorithm.RSA


def new_cert_config(
    cn: str,
    org: Optional[List[str]] = None,
    alt_names: Optional[AltNames] = None,
    not_after: Optional[dt.datetime] = None,
    algorithm: KeyAlgorithm = KeyAlgorithm.RSA,
) -> CertsConfig:
    """Config for a leaf used both as TLS server and TLS client."""
    return CertsConfig(
        common_name=cn,
        organization=list(org or []),
        alt_names=alt_names or AltNames(),
        usages=[ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH],
        not_after=not_after,
        public_key_algorithm=algorithm,
    )


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0)


def _as_utc(d: dt.datetime) -> dt.datetime:
    if d.tzinfo is None:
        return d.replace(tzinfo=dt.timezone.utc)
    return d.astimezone(dt.timezone.utc)


def not_before_of(cert: x509.Certificate) -> dt.datetime:
    return cert.not_valid_before_utc


def _random_serial() -> int:
    return secrets.randbelow(MAX_SERIAL) + 1


def _subject(cfg: CertsConfig) -> x509.Name:
    attrs = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, org) for org in cfg.organization]
    attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, cfg.common_name))
    return x509.Name(attrs)


def _key_usage(is_ca: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=True,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=is_ca,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )


def _san(alt_names: AltNames) -> Optional[x509.SubjectAlternativeName]:
    general: List[x509.GeneralName] = [x509.DNSName(n) for n in alt_names.dns_names]
    general.extend(x509.IPAddress(ip) for ip in alt_names.ips)
    return x509.SubjectAlternativeName(general) if general else None


def _round_trip(cert: x509.Certificate) -> x509.Certificate:
    return x509.load_der_x509_certificate(cert.public_bytes(Encoding.DER))


class CertificateAuthorityFactory:
    """Builds self-signed CA certificates and their keys."""

    def __init__(self, key_generator: Optional[KeyGenerator] = None, validity: dt.timedelta = DURATION_365D) -> None:
        self._keys = key_generator or KeyGenerator()
        self._validity = validity

    def new_certificate_authority(self, config: CertsConfig) -> Tuple[x509.Certificate, KeyPair]:
        if not config.common_name:
            raise ValidationError("must specify a CommonName")

        try:
            key = self._keys.generate(config.public_key_algorithm)
        except KeyGenerationError as exc:
            raise CAGenerationError(
                f"unable to create private key while generating CA certificate {config.common_name!r}: {exc}"
            ) from exc

        try:
            cert = self._self_signed(config, key)
        except Exception as exc:
            raise CAGenerationError(
                f"unable to create self-signed CA certificate {config.common_name!r}: {exc}"
            ) from exc
        return cert, key

    def _self_signed(self, config: CertsConfig, key: KeyPair) -> x509.Certificate:
        not_before = _utcnow()
        not_after = _as_utc(config.not_after) if config.not_after else not_before + self._validity
        name = _subject(config)
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key)
            .serial_number(_random_serial())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(_key_usage(is_ca=True), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key), critical=False)
            .add_extension(x509.SubjectAlternativeName([x509.DNSName(config.common_name)]), critical=False)
        )
        return _round_trip(builder.sign(key.private_key, hashes.SHA256()))


class CertificateIssuer:
    """Signs leaf and subordinate CA certificates against an issuer pair."""

    def __init__(self, key_generator: Optional[KeyGenerator] = None) -> None:
        self._keys = key_generator or KeyGenerator()

    def new_signed_cert(
        self,
        config: CertsConfig,
        key: KeyPair,
        ca_cert: x509.Certificate,
        ca_key: KeyPair,
        is_ca: bool,
    ) -> x509.Certificate:
        """
        Sign a certificate for ``key`` with ``ca_key``.

        NotBefore is copied from ``ca_cert`` rather than taken from the clock,
        so every certificate under one CA shares the CA's start of validity.
        NotAfter is ``config.not_after`` when set, else NotBefore + 365 days.
        ``config`` is not modified.
        """
        if not config.common_name:
            raise ValidationError("must specify a CommonName")

        cfg = replace(config, alt_names=remove_duplicate_alt_names(config.alt_names))

        try:
            not_before = not_before_of(ca_cert)
            not_after = _as_utc(cfg.not_after) if cfg.not_after else not_before + DURATION_365D

            builder = (
                x509.CertificateBuilder()
                .subject_name(_subject(cfg))
                .issuer_name(ca_cert.subject)
                .public_key(key.public_key)
                .serial_number(_random_serial())
                .not_valid_before(not_before)
                .not_valid_after(not_after)
                .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
                .add_extension(_key_usage(is_ca), critical=True)
                .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key), critical=False)
                .add_extension(
                    x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key), critical=False
                )
            )
            if cfg.usages:
                builder = builder.add_extension(x509.ExtendedKeyUsage(list(cfg.usages)), critical=False)
            san = _san(cfg.alt_names)
            if san is not None:
                builder = builder.add_extension(san, critical=False)

            return _round_trip(builder.sign(ca_key.private_key, hashes.SHA256()))
        except Exception as exc:
            raise SigningError(f"unable to sign certificate {cfg.common_name!r}: {exc}") from exc

    def new_cert_and_key(
        self,
        ca_cert: x509.Certificate,
        ca_key: KeyPair,
        config: CertsConfig,
    ) -> Tuple[x509.Certificate, KeyPair]:
        # validated before any key material is generated
        if not config.common_name:
            raise ValidationError("must specify a CommonName")
        if not config.usages:
            raise ValidationError(f"must specify at least one ExtKeyUsage for {config.common_name!r}")

        key = self._keys.generate(config.public_key_algorithm)
        cert = self.new_signed_cert(config, key, ca_cert, ca_key, is_ca=False)
        return cert, key


def new_ca_cert_and_key(
    cn: str,
    key_generator: Optional[KeyGenerator] = None,
    validity: dt.timedelta = DURATION_365D,
) -> Tuple[x509.Certificate, KeyPair]:
    return CertificateAuthorityFactory(key_generator, validity).new_certificate_authority(CertsConfig(common_name=cn))

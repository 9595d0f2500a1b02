import datetime as dt
from typing import Any, Dict, List, Optional, cast

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID as EKUOID, NameOID

EKU_BY_NAME = {
    "serverAuth": EKUOID.SERVER_AUTH,
    "clientAuth": EKUOID.CLIENT_AUTH,
    "codeSigning": EKUOID.CODE_SIGNING,
    "emailProtection": EKUOID.EMAIL_PROTECTION,
    "timeStamping": EKUOID.TIME_STAMPING,
    "OCSPSigning": EKUOID.OCSP_SIGNING,
}
_EKU_NAMES = {oid: name for name, oid in EKU_BY_NAME.items()}


def iso_utc(d: dt.datetime) -> str:
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    return d.astimezone(dt.timezone.utc).isoformat().replace("+00:00", "Z")


def _name_to_cn(name: x509.Name) -> Optional[str]:
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    return cast(str, attrs[0].value) if attrs else None


def _public_key_info(cert: x509.Certificate) -> Dict[str, Any]:
    pk = cert.public_key()
    if isinstance(pk, rsa.RSAPublicKey):
        return {"type": "RSA", "size": pk.key_size}
    if isinstance(pk, ec.EllipticCurvePublicKey):
        return {"type": "EC", "curve": pk.curve.name}
    return {"type": pk.__class__.__name__}


def _ext(cert: x509.Certificate, oid: x509.ObjectIdentifier) -> Optional[x509.ExtensionType]:
    try:
        return cert.extensions.get_extension_for_oid(oid).value
    except x509.ExtensionNotFound:
        return None


def san_of(cert: x509.Certificate) -> Dict[str, List[str]]:
    san = cast(Optional[x509.SubjectAlternativeName], _ext(cert, x509.oid.ExtensionOID.SUBJECT_ALTERNATIVE_NAME))
    if san is None:
        return {"dns_names": [], "ips": []}
    return {
        "dns_names": list(san.get_values_for_type(x509.DNSName)),
        "ips": [str(ip) for ip in san.get_values_for_type(x509.IPAddress)],
    }


def _key_usage(cert: x509.Certificate) -> List[str]:
    ku = cast(Optional[x509.KeyUsage], _ext(cert, x509.oid.ExtensionOID.KEY_USAGE))
    if ku is None:
        return []
    names: List[str] = []
    if ku.digital_signature: names.append("digitalSignature")
    if ku.content_commitment: names.append("contentCommitment")
    if ku.key_encipherment: names.append("keyEncipherment")
    if ku.data_encipherment: names.append("dataEncipherment")
    if ku.key_agreement: names.append("keyAgreement")
    if ku.key_cert_sign: names.append("keyCertSign")
    if ku.crl_sign: names.append("cRLSign")
    return names


def _eku_list(cert: x509.Certificate) -> List[str]:
    eku = cast(Optional[x509.ExtendedKeyUsage], _ext(cert, x509.oid.ExtensionOID.EXTENDED_KEY_USAGE))
    if eku is None:
        return []
    return [_EKU_NAMES.get(oid, oid.dotted_string) for oid in eku]


def is_ca(cert: x509.Certificate) -> bool:
    bc = cast(Optional[x509.BasicConstraints], _ext(cert, x509.oid.ExtensionOID.BASIC_CONSTRAINTS))
    return bool(bc and bc.ca)


def verify_issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    """True when ``cert`` carries ``issuer``'s subject and a valid signature from its key."""
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True


def cert_to_meta(cert: x509.Certificate) -> Dict[str, Any]:
    san = san_of(cert)
    return {
        "subject_dn": cert.subject.rfc4514_string(),
        "issuer_dn": cert.issuer.rfc4514_string(),
        "subject_cn": _name_to_cn(cert.subject),
        "issuer_cn": _name_to_cn(cert.issuer),
        "not_before": iso_utc(cert.not_valid_before_utc),
        "not_after": iso_utc(cert.not_valid_after_utc),
        "serial_number": str(cert.serial_number),
        "san": san["dns_names"] + san["ips"],
        "key_usage": _key_usage(cert),
        "eku": _eku_list(cert),
        "is_ca": is_ca(cert),
        "public_key": _public_key_info(cert),
        "fingerprint_sha256": cert.fingerprint(hashes.SHA256()).hex(),
    }

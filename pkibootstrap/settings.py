import os
from dataclasses import dataclass, field

from .keys import KeyAlgorithm


def _positive_int(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
        if value <= 0:
            raise ValueError
    except ValueError:
        value = default
    return value


@dataclass(frozen=True)
class Settings:
    LOG_LEVEL: str = field(default="INFO")
    KEY_ALGORITHM: KeyAlgorithm = field(default=KeyAlgorithm.RSA)
    MAX_WORKERS: int = field(default=1)
    CA_VALIDITY_DAYS: int = field(default=365)

    @staticmethod
    def from_env() -> "Settings":
        log_level = os.getenv("PKIBOOTSTRAP_LOG_LEVEL", "INFO").upper()
        try:
            algo = KeyAlgorithm(os.getenv("PKIBOOTSTRAP_KEY_ALGORITHM", "RSA").strip().upper())
        except ValueError:
            algo = KeyAlgorithm.RSA
        return Settings(
            LOG_LEVEL=log_level,
            KEY_ALGORITHM=algo,
            MAX_WORKERS=_positive_int("PKIBOOTSTRAP_MAX_WORKERS", 1),
            CA_VALIDITY_DAYS=_positive_int("PKIBOOTSTRAP_CA_VALIDITY_DAYS", 365),
        )

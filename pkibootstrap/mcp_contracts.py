# pkibootstrap/mcp_contracts.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, IPvAnyAddress, field_validator

from .altnames import AltNames
from .certs import CertsConfig
from .keys import KeyAlgorithm
from .x509meta import EKU_BY_NAME


class CertRequest(BaseModel):
    common_name: str = Field(..., examples=["karmada-apiserver"])
    organization: List[str] = []
    dns_names: List[str] = Field(default_factory=list, examples=[["kubernetes.default.svc", "localhost"]])
    ips: List[IPvAnyAddress] = Field(default_factory=list, examples=[["127.0.0.1"]])
    usages: List[str] = Field(default_factory=lambda: ["serverAuth", "clientAuth"])
    not_after: Optional[dt.datetime] = None
    key_algorithm: Optional[KeyAlgorithm] = None

    @field_validator("usages")
    @classmethod
    def _known_usages(cls, value: List[str]) -> List[str]:
        unknown = [u for u in value if u not in EKU_BY_NAME]
        if unknown:
            raise ValueError(f"unknown extended key usage(s): {', '.join(unknown)}")
        return value

    def to_config(self, default_algorithm: KeyAlgorithm = KeyAlgorithm.RSA) -> CertsConfig:
        return CertsConfig(
            common_name=self.common_name,
            organization=list(self.organization),
            alt_names=AltNames(dns_names=list(self.dns_names), ips=list(self.ips)),
            usages=[EKU_BY_NAME[u] for u in self.usages],
            not_after=self.not_after,
            public_key_algorithm=self.key_algorithm or default_algorithm,
        )

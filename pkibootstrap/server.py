import datetime as dt
import logging
from typing import Annotated, Any, Dict

from fastmcp import FastMCP
from pydantic import Field

from .bundle import BUNDLE_NAMES, HIERARCHIES, BundleOrchestrator
from .logging_conf import setup_logging
from .mcp_contracts import CertRequest
from .pem import load_cert_pem
from .settings import Settings
from .store import read_bundle_certs, resolve_pki_path, write_bundle
from .x509meta import cert_to_meta, verify_issued_by

logger = logging.getLogger(__name__)

mcp = FastMCP(
    name="PKIBootstrap",
    instructions=(
        "Purpose: bootstrap the PKI of a control plane. Creates three independent CAs "
        "(karmada, front-proxy-ca, etcd-ca) and the leaf certificates signed by them, "
        "then writes `<name>.crt`/`<name>.key` pairs under a directory.\n\n"
        "How to call:\n"
        "- `generate_bundle(pki_path=..., etcd_server=..., etcd_client=..., karmada=..., "
        "apiserver=..., front_proxy_client=...)`: each leaf takes `common_name`, optional "
        "`organization`, `dns_names`, `ips`, `usages` (serverAuth, clientAuth, ...), "
        "`not_after` and `key_algorithm` (RSA or ECDSA).\n"
        "- `describe_bundle(pki_path=...)`: read back certificates and check each leaf "
        "against its CA.\n\n"
        "Safety: generation is all-or-nothing; private keys are written to disk with mode 0600 "
        "and are never returned."
    ),
)


def _orchestrator(settings: Settings) -> BundleOrchestrator:
    return BundleOrchestrator(
        max_workers=settings.MAX_WORKERS,
        ca_algorithm=settings.KEY_ALGORITHM,
        ca_validity=dt.timedelta(days=settings.CA_VALIDITY_DAYS),
    )


LeafRequest = Annotated[CertRequest, Field(description="Certificate request for one leaf identity.")]


@mcp.tool(
    description=(
        "Generate the full control-plane certificate bundle (3 CAs, 5 leaves) and write it "
        "to `pki_path`. Returns the written file names and certificate metadata."
    ),
    tags={"pki", "x509", "generate", "filesystem"},
    annotations={
        "title": "Generate certificate bundle",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": False,
    },
)
def generate_bundle(
    pki_path: Annotated[str, Field(description="Directory (or file:// URI) receiving the bundle.")],
    etcd_server: LeafRequest,
    etcd_client: LeafRequest,
    karmada: LeafRequest,
    apiserver: LeafRequest,
    front_proxy_client: LeafRequest,
) -> dict:
    settings = Settings.from_env()
    algo = settings.KEY_ALGORITHM
    bundle = _orchestrator(settings).generate_bundle(
        etcd_server.to_config(algo),
        etcd_client.to_config(algo),
        karmada.to_config(algo),
        apiserver.to_config(algo),
        front_proxy_client.to_config(algo),
    )
    paths = write_bundle(pki_path, bundle)
    logger.info("wrote %d files to %s", len(paths), resolve_pki_path(pki_path))
    return {
        "pki_path": str(resolve_pki_path(pki_path)),
        "files": [p.name for p in paths],
        "certificates": {name: cert_to_meta(load_cert_pem(bundle[f"{name}.crt"])) for name in BUNDLE_NAMES},
    }


@mcp.tool(
    description=(
        "Read the certificates of a bundle directory and report their metadata, which "
        "expected files are missing, and whether each leaf verifies against its CA."
    ),
    tags={"pki", "x509", "analysis", "filesystem"},
    annotations={
        "title": "Describe certificate bundle",
        "readOnlyHint": True,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
def describe_bundle(
    pki_path: Annotated[str, Field(description="Directory (or file:// URI) holding the bundle.")],
) -> dict:
    certs = read_bundle_certs(pki_path)
    out: Dict[str, Any] = {}
    for h in HIERARCHIES:
        ca = certs.get(h.name)
        if ca is not None:
            out[h.name] = {**cert_to_meta(ca), "verified": verify_issued_by(ca, ca)}
        for leaf in h.leaves:
            cert = certs.get(leaf)
            if cert is None:
                continue
            out[leaf] = {
                **cert_to_meta(cert),
                "issuer": h.name,
                "verified": ca is not None and verify_issued_by(cert, ca),
            }
    return {
        "pki_path": str(resolve_pki_path(pki_path)),
        "certificates": out,
        "missing": [name for name in BUNDLE_NAMES if name not in certs],
    }


@mcp.prompt(
    name="audit_bundle",
    description="Audit a generated bundle with `describe_bundle` and report trust or validity problems.",
    tags={"pki", "prompt", "audit"},
)
def audit_bundle(
    pki_path: Annotated[str, Field(description="Directory holding the bundle.")],
) -> str:
    return (
        "Task: Audit the control-plane certificate bundle.\n\n"
        "1) Call the MCP tool `describe_bundle` with:\n"
        "```json\n"
        f'{{ "pki_path": "{pki_path}" }}\n'
        "```\n\n"
        "2) Flag: missing files; leaves with `verified: false`; CAs without keyCertSign; "
        "leaves without serverAuth/clientAuth; certificates expiring within 30 days; any leaf "
        "whose not_before does not equal its CA's not_before.\n\n"
        "OUTPUT: a short bullet list of findings, or `OK` if there are none. Do not invent results.\n"
    )


if __name__ == "__main__":
    setup_logging(Settings.from_env())
    mcp.run()

"""PKI manager façade: the single entry point the host application calls."""

import asyncio
import logging
import os
import shutil
from collections.abc import Sequence

from .certificate_authority import CertificateAuthority
from .certificate_issuer import CertificateIssuer
from .config import PkiConfig
from .config_store import ConfigStore, JsonConfigStore
from .crypto_tool import CryptoToolInvoker, OpenSSLInvoker, resolve_openssl_binary
from .errors import NotFoundError, PkiError, StateError
from .inprocess_tool import CryptographyInvoker
from .models import CAStatus, CertificatePaths, DomainCertificateRecord, RootCertificateAuthority, TrustResult
from .registry import CertificateRegistry
from .trust_installer import TrustInstaller

logger = logging.getLogger(__name__)


def build_openssl_invoker(config: PkiConfig) -> OpenSSLInvoker:
    """OpenSSL invoker using the bundled binary when the application ships one."""
    return OpenSSLInvoker(
        binary=resolve_openssl_binary(config.resource_path),
        timeout=config.process_timeout,
    )


class PkiManager:
    """Coordinates CA bootstrap, issuance, registry and trust installation.

    initialize() must complete before certificates can be issued.
    """

    def __init__(
        self,
        config: PkiConfig,
        store: ConfigStore,
        invoker: CryptoToolInvoker | None = None,
        trust_installer: TrustInstaller | None = None,
    ) -> None:
        """Wire the PKI components together.

        Args:
            config: PKI configuration (data directory, subject, validity)
            store: Host key-value configuration store backing the registry
            invoker: Crypto tool; defaults to the OpenSSL command line
            trust_installer: Trust installer; defaults to the current platform's
        """
        self.config = config
        self.invoker = invoker if invoker is not None else build_openssl_invoker(config)
        self.registry = CertificateRegistry(store)
        self.authority = CertificateAuthority(config, self.invoker)
        self.issuer = CertificateIssuer(config, self.authority, self.invoker, self.registry)
        self.trust_installer = (
            trust_installer if trust_installer is not None else TrustInstaller(self.invoker, config.app_name)
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @classmethod
    def create(cls, config: PkiConfig, in_process: bool = False) -> "PkiManager":
        """Build a manager whose registry lives in a JSON config file under data_dir.

        Args:
            config: PKI configuration
            in_process: Use the cryptography library instead of the openssl binary
        """
        invoker: CryptoToolInvoker | None = None
        if in_process:
            invoker = CryptographyInvoker(timeout=config.process_timeout)
        return cls(config, JsonConfigStore(config.registry_path), invoker=invoker)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> CAStatus:
        """Bootstrap the root CA and prompt to trust it when newly created.

        Trust installation failures are logged and never raised.

        Raises:
            CryptoToolError: If the CA cannot be created (HTTPS unavailable)
            ToolNotFoundError: If the crypto toolkit binary is missing
        """
        async with self._init_lock:
            logger.info("Initializing PKI manager in %s", self.config.ssl_dir)
            status = await self.authority.ensure_created()
            self._initialized = True

            if status.created:
                logger.info("Prompting user to trust root CA")
                result = await self.trust_root_ca()
                if not result.success:
                    logger.info("Root CA not trusted automatically: %s", result.message)

            logger.info("PKI manager initialized")
            return status

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise StateError("PKI manager not initialized")

    async def issue_certificate(self, domains: Sequence[str]) -> DomainCertificateRecord:
        """Issue (or re-issue) a certificate for domains; domains[0] is the primary."""
        self._require_initialized()
        return await self.issuer.issue(domains)

    async def delete_certificate(self, primary_domain: str) -> dict[str, bool]:
        """Remove a domain's registry record and certificate directory.

        Raises:
            NotFoundError: If no certificate is registered for primary_domain
        """
        async with self.issuer.domain_lock(primary_domain):
            if self.registry.get(primary_domain) is None:
                raise NotFoundError(f"certificate for {primary_domain} not found")

            domain_dir = self.config.domain_dir(primary_domain)
            # Labels never start with ".", so this name cannot belong to a domain
            retired = domain_dir.with_name(f".{domain_dir.name}.deleting")
            if retired.exists():
                shutil.rmtree(retired)
            if domain_dir.exists():
                os.rename(domain_dir, retired)
            try:
                self.registry.remove(primary_domain)
            except (PkiError, OSError):
                if retired.exists():
                    os.rename(retired, domain_dir)
                raise
            shutil.rmtree(retired, ignore_errors=True)

        logger.info("Certificate for %s deleted", primary_domain)
        return {"success": True}

    def get_certificate(self, primary_domain: str) -> DomainCertificateRecord | None:
        return self.registry.get(primary_domain)

    def get_certificate_paths(self, primary_domain: str) -> CertificatePaths | None:
        record = self.registry.get(primary_domain)
        if record is None:
            return None
        return record.paths()

    def list_certificates(self) -> dict[str, DomainCertificateRecord]:
        return self.registry.list()

    def ca_status(self) -> RootCertificateAuthority:
        return self.authority.status()

    async def trust_root_ca(self, system_wide: bool = False) -> TrustResult:
        """Install the root CA into the OS trust store; never raises."""
        return await self.trust_installer.install_root_trust(self.config.ca_cert_path, system_wide=system_wide)

    async def trust_certificate(self, primary_domain: str) -> TrustResult:
        """Trust a domain's certificate by trusting the root CA that signed it system-wide.

        Raises:
            NotFoundError: If no certificate is registered for primary_domain
        """
        if self.registry.get(primary_domain) is None:
            raise NotFoundError(f"certificate for {primary_domain} not found")
        return await self.trust_root_ca(system_wide=True)

    def get_manual_trust_instructions(self) -> str:
        return self.trust_installer.get_manual_instructions(self.config.ca_cert_path)

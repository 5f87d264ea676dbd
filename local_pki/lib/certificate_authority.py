"""Root certificate authority lifecycle."""

import asyncio
import logging

from .config import PkiConfig
from .crypto_tool import CryptoToolInvoker
from .errors import PkiError, StateError
from .models import CAStatus, RootCertificateAuthority
from .request_config import CA_EXTENSION_SECTION, RequestConfig
from .serial_counter import SerialCounter

logger = logging.getLogger(__name__)


class CertificateAuthority:
    """Owns the installation's single root CA.

    The CA is created once and never regenerated while its certificate file
    exists. Removing it is left to an external reset.
    """

    def __init__(self, config: PkiConfig, invoker: CryptoToolInvoker) -> None:
        """Initialize CA with configuration and the crypto tool to drive.

        Args:
            config: PKI configuration with storage paths and CA subject
            invoker: Crypto tool used for key generation and signing
        """
        self.config = config
        self.invoker = invoker
        self.serials = SerialCounter(config.ca_serial_path)
        self._authority: RootCertificateAuthority | None = None
        self._lock = asyncio.Lock()

    @property
    def common_name(self) -> str:
        return f"{self.config.app_name} Root CA"

    @property
    def exists(self) -> bool:
        return self.config.ca_cert_path.is_file()

    def ensure_directories(self) -> None:
        """Create CA and leaf storage directories (no error if present)."""
        self.config.ca_dir.mkdir(parents=True, exist_ok=True)
        self.config.ssl_dir.mkdir(parents=True, exist_ok=True)

    def _handle(self) -> RootCertificateAuthority:
        if self._authority is None:
            self._authority = RootCertificateAuthority(
                private_key_path=self.config.ca_key_path,
                certificate_path=self.config.ca_cert_path,
            )
        return self._authority

    def status(self) -> RootCertificateAuthority:
        """Return the CA handle whether or not the CA exists yet."""
        return self._handle()

    def load(self) -> RootCertificateAuthority:
        """Return the cached CA handle.

        Raises:
            StateError: If the CA key or certificate is missing
        """
        authority = self._handle()
        if not authority.exists:
            raise StateError("root CA not initialized")
        return authority

    async def ensure_created(self) -> CAStatus:
        """Create the root CA key and self-signed certificate if absent.

        Generates:
            - rootCA-key.pem: RSA private key
            - ca.cnf: request configuration with the v3_ca extension section
            - rootCA.pem: self-signed certificate, SHA-256, root validity period

        Returns:
            CAStatus with created=True when the CA was generated by this call

        Raises:
            CryptoToolError: If the toolkit fails; no key/cert pair is left behind
            ToolNotFoundError: If the toolkit binary is missing
        """
        async with self._lock:
            self.ensure_directories()
            if self.exists:
                return CAStatus(created=False, authority=self._handle())

            logger.info("Creating root CA certificate in %s", self.config.ca_dir)
            key_path = self.config.ca_key_path
            cert_path = self.config.ca_cert_path
            request = RequestConfig.for_root_ca(
                self.config.distinguished_name(self.common_name),
                bits=self.config.key_size,
            )
            try:
                await self.invoker.run_key_gen(key_path, self.config.key_size)
                request.write(self.config.ca_config_path)
                await self.invoker.run_self_sign(
                    key_path=key_path,
                    output_cert_path=cert_path,
                    request_config_path=self.config.ca_config_path,
                    validity_days=self.config.root_validity_days,
                    extension_section=CA_EXTENSION_SECTION,
                )
            except (PkiError, OSError):
                cert_path.unlink(missing_ok=True)
                key_path.unlink(missing_ok=True)
                raise

            # A new CA starts a new serial sequence
            self.config.ca_serial_path.unlink(missing_ok=True)
            self._authority = None
            logger.info("Root CA certificate created: %s", cert_path)
            return CAStatus(created=True, authority=self._handle())

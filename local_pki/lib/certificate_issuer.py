"""Leaf certificate issuance for local development domains."""

import asyncio
import logging
import os
import re
import shutil
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .cert_utils import get_san_dns_names, is_issued_by, load_certificate
from .certificate_authority import CertificateAuthority
from .config import PkiConfig
from .crypto_tool import CryptoToolInvoker
from .errors import CryptoToolError, PkiError, ValidationError
from .models import DomainCertificateRecord, RootCertificateAuthority
from .registry import CertificateRegistry
from .request_config import LEAF_EXTENSION_SECTION, RequestConfig, build_san_list

logger = logging.getLogger(__name__)

# File names other collaborators (web server configs) read; do not change.
KEY_FILENAME = "key.pem"
CERT_FILENAME = "cert.pem"
PARTIAL_SUFFIX = ".partial"
BACKUP_SUFFIX = ".previous"
RESERVED_DIRNAME = "ca"
MAX_DOMAIN_LENGTH = 253

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_LABEL = r"(?!-)[A-Za-z0-9_-]{1,63}(?<!-)"
_DOMAIN = re.compile(rf"(\*\.)?{_LABEL}(\.{_LABEL})*")


def sanitize_cert_name(domain: str) -> str:
    """Filesystem-safe name for intermediate artifacts (CSR, request config)."""
    return _UNSAFE_CHARS.sub("_", domain)


def validate_domains(domains: Sequence[str]) -> list[str]:
    """Check the requested domain list and return it as a list.

    Each entry is a dot-separated sequence of hostname labels (letters,
    digits, ``-`` and ``_``), optionally prefixed by ``*.``.

    Raises:
        ValidationError: If the list is empty, holds an entry that is not a
            host name, or the primary domain is reserved
    """
    if isinstance(domains, str) or not domains:
        raise ValidationError("at least one domain is required")
    checked = list(domains)
    for domain in checked:
        if (
            not isinstance(domain, str)
            or len(domain) > MAX_DOMAIN_LENGTH
            or _DOMAIN.fullmatch(domain) is None
        ):
            raise ValidationError(f"invalid domain: {domain!r}")
    primary = checked[0]
    # ssl/ca holds the root CA
    if primary.lower() == RESERVED_DIRNAME:
        raise ValidationError(f"reserved primary domain: {primary!r}")
    return checked


def verify_issued_certificate(cert_path: Path, authority: RootCertificateAuthority, domains: list[str]) -> None:
    """Check a freshly signed leaf chains to the root CA and carries exactly the requested SANs.

    Raises:
        CryptoToolError: If the certificate cannot be read or does not match
    """
    try:
        cert = load_certificate(cert_path)
        root = load_certificate(authority.certificate_path)
    except (OSError, ValueError) as e:
        raise CryptoToolError(f"cannot read issued certificate {cert_path}", str(e)) from e
    if not is_issued_by(cert, root):
        raise CryptoToolError(f"issued certificate {cert_path} is not signed by the root CA")
    expected = build_san_list(domains)
    actual = get_san_dns_names(cert)
    if actual != expected:
        raise CryptoToolError(
            f"issued certificate {cert_path} has unexpected subject alternative names",
            ", ".join(actual),
        )


def swap_in(staged: list[tuple[Path, Path]]) -> None:
    """Move each staged file onto its target, all or nothing.

    Existing targets are copied aside first and put back if any move fails.
    """
    backups: list[tuple[Path, Path]] = []
    try:
        for source, target in staged:
            if target.exists():
                backup = target.with_name(target.name + BACKUP_SUFFIX)
                shutil.copy2(target, backup)
                backups.append((backup, target))
            os.replace(source, target)
    except OSError:
        for backup, target in reversed(backups):
            os.replace(backup, target)
        raise
    for backup, _ in backups:
        backup.unlink(missing_ok=True)


class CertificateIssuer:
    """Builds per-domain leaf certificates signed by the root CA."""

    def __init__(
        self,
        config: PkiConfig,
        authority: CertificateAuthority,
        invoker: CryptoToolInvoker,
        registry: CertificateRegistry,
    ) -> None:
        self.config = config
        self.authority = authority
        self.invoker = invoker
        self.registry = registry
        # primary domain -> (lock, number of holders and waiters)
        self._domain_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def domain_lock(self, primary_domain: str) -> AsyncIterator[None]:
        """Exclusion held while a primary domain's files or record change.

        The lock is dropped once no task holds or waits for it.
        """
        lock, users = self._domain_locks.get(primary_domain, (asyncio.Lock(), 0))
        self._domain_locks[primary_domain] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._domain_locks[primary_domain]
            if users == 1:
                del self._domain_locks[primary_domain]
            else:
                self._domain_locks[primary_domain] = (lock, users - 1)

    async def issue(self, domains: Sequence[str]) -> DomainCertificateRecord:
        """Issue a leaf certificate covering domains, signed by the root CA.

        The first domain is the primary domain: it is the certificate CN, the
        registry key and the storage directory name. The SAN list holds every
        domain followed by a ``*.<domain>`` wildcard for each non-wildcard entry.

        Args:
            domains: Ordered domain names, primary first

        Returns:
            DomainCertificateRecord, already persisted in the registry

        Raises:
            ValidationError: If domains is empty or malformed (nothing written)
            StateError: If the root CA does not exist (nothing written)
            CryptoToolError: If key, CSR, signing or the check of the signed
                certificate fails (nothing registered, previous files kept)
        """
        domains = validate_domains(domains)
        authority = self.authority.load()
        primary = domains[0]

        async with self.domain_lock(primary):
            domain_dir = self.config.domain_dir(primary)
            had_record = self.registry.get(primary) is not None
            domain_dir.mkdir(parents=True, exist_ok=True)

            cert_name = sanitize_cert_name(primary)
            key_path = domain_dir / KEY_FILENAME
            cert_path = domain_dir / CERT_FILENAME
            partial_key = domain_dir / (KEY_FILENAME + PARTIAL_SUFFIX)
            partial_cert = domain_dir / (CERT_FILENAME + PARTIAL_SUFFIX)
            csr_path = domain_dir / f"{cert_name}.csr"
            config_path = domain_dir / f"{cert_name}.cnf"

            logger.info("Creating certificate for: %s", ", ".join(domains))
            request = RequestConfig.for_leaf(
                self.config.distinguished_name(primary),
                domains,
                bits=self.config.key_size,
            )
            try:
                await self.invoker.run_key_gen(partial_key, self.config.key_size)
                request.write(config_path)
                await self.invoker.run_csr(partial_key, csr_path, config_path)
                serial = await self.authority.serials.next_serial()
                await self.invoker.run_ca_sign(
                    csr_path=csr_path,
                    ca_cert_path=authority.certificate_path,
                    ca_key_path=authority.private_key_path,
                    output_cert_path=partial_cert,
                    request_config_path=config_path,
                    validity_days=self.config.leaf_validity_days,
                    extension_section=LEAF_EXTENSION_SECTION,
                    serial=serial,
                )
                verify_issued_certificate(partial_cert, authority, domains)
                swap_in([(partial_key, key_path), (partial_cert, cert_path)])
            except (PkiError, ValueError, OSError):
                logger.error("Certificate creation failed for %s", primary)
                partial_key.unlink(missing_ok=True)
                partial_cert.unlink(missing_ok=True)
                if not had_record:
                    shutil.rmtree(domain_dir, ignore_errors=True)
                raise

            created_at = datetime.now(timezone.utc)
            record = DomainCertificateRecord(
                primary_domain=primary,
                domains=domains,
                key_path=key_path,
                cert_path=cert_path,
                created_at=created_at,
                expires_at=created_at + timedelta(days=self.config.leaf_validity_days),
            )
            self.registry.upsert(record)

        logger.info("Certificate created for %s (serial %X)", primary, serial)
        return record

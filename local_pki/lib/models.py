"""Data models for local PKI operations."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TypedDict


class CertificateEntry(TypedDict):
    """Registry value persisted under the "certificates" config key."""

    domains: list[str]
    keyPath: str
    certPath: str
    createdAt: str
    expiresAt: str


class CertificatePaths(TypedDict):
    """Key and certificate file locations handed to web server collaborators."""

    key: str
    cert: str


@dataclass
class RootCertificateAuthority:
    """Handle on the installation's root CA files.

    created_at is derived from the certificate file, never stored.
    """

    private_key_path: Path
    certificate_path: Path

    @property
    def exists(self) -> bool:
        return self.certificate_path.is_file() and self.private_key_path.is_file()

    @property
    def created_at(self) -> datetime | None:
        if not self.certificate_path.is_file():
            return None
        return datetime.fromtimestamp(self.certificate_path.stat().st_mtime, tz=timezone.utc)


@dataclass
class CAStatus:
    """Result from CA bootstrap."""

    created: bool
    authority: RootCertificateAuthority


@dataclass
class DomainCertificateRecord:
    """Certificate issued for one primary domain.

    domains is non-empty and domains[0] is the primary domain.
    """

    primary_domain: str
    domains: list[str]
    key_path: Path
    cert_path: Path
    created_at: datetime
    expires_at: datetime

    def __post_init__(self) -> None:
        if not self.domains:
            raise ValueError("domains must not be empty")
        if self.domains[0] != self.primary_domain:
            raise ValueError("primary_domain must equal domains[0]")

    def to_entry(self) -> CertificateEntry:
        """Serialize to the persisted registry shape."""
        return CertificateEntry(
            domains=list(self.domains),
            keyPath=str(self.key_path),
            certPath=str(self.cert_path),
            createdAt=self.created_at.isoformat(),
            expiresAt=self.expires_at.isoformat(),
        )

    @classmethod
    def from_entry(cls, primary_domain: str, entry: CertificateEntry) -> "DomainCertificateRecord":
        """Deserialize a persisted registry value."""
        return cls(
            primary_domain=primary_domain,
            domains=list(entry["domains"]),
            key_path=Path(entry["keyPath"]),
            cert_path=Path(entry["certPath"]),
            created_at=datetime.fromisoformat(entry["createdAt"]),
            expires_at=datetime.fromisoformat(entry["expiresAt"]),
        )

    def paths(self) -> CertificatePaths:
        return CertificatePaths(key=str(self.key_path), cert=str(self.cert_path))


class TrustState(Enum):
    UNTRUSTED = "untrusted"
    INSTALL_ATTEMPTED = "install_attempted"
    TRUSTED = "trusted"
    INSTALL_FAILED = "install_failed"


@dataclass
class TrustResult:
    """Outcome of a root CA trust-store installation.

    manual_instructions is set whenever success is False.
    """

    success: bool
    message: str
    state: TrustState
    manual_instructions: str | None = None
    error: str | None = None

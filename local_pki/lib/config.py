"""PKI configuration dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509
from cryptography.x509 import oid

DATA_DIR_ENV = "LOCAL_PKI_DATA_DIR"
RESOURCE_PATH_ENV = "LOCAL_PKI_RESOURCE_PATH"


def _default_data_dir() -> Path:
    return Path.home() / ".devbox-pro" / "data"


@dataclass
class PkiConfig:
    """Local PKI configuration: storage location, subject template and validity periods."""

    data_dir: Path = field(default_factory=_default_data_dir)
    resource_path: Path | None = None
    app_name: str = "DevBox Pro"
    country: str = "US"
    state: str = "Local"
    locality: str = "Local"
    organization: str = "DevBox Pro"
    organizational_unit: str = "Development"
    key_size: int = 2048
    root_validity_days: int = 3650
    leaf_validity_days: int = 825
    process_timeout: float = 60.0

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        if self.resource_path is not None:
            self.resource_path = Path(self.resource_path)
        if self.key_size < 2048:
            raise ValueError("key_size must be at least 2048 bits")

    @classmethod
    def from_env(cls, **overrides: object) -> "PkiConfig":
        """Build config, taking data and resource directories from the environment when set."""
        values: dict[str, object] = {}
        data_dir = os.environ.get(DATA_DIR_ENV)
        if data_dir:
            values["data_dir"] = Path(data_dir)
        resource_path = os.environ.get(RESOURCE_PATH_ENV)
        if resource_path:
            values["resource_path"] = Path(resource_path)
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    @property
    def ssl_dir(self) -> Path:
        return self.data_dir / "ssl"

    @property
    def ca_dir(self) -> Path:
        return self.ssl_dir / "ca"

    @property
    def ca_key_path(self) -> Path:
        return self.ca_dir / "rootCA-key.pem"

    @property
    def ca_cert_path(self) -> Path:
        return self.ca_dir / "rootCA.pem"

    @property
    def ca_config_path(self) -> Path:
        return self.ca_dir / "ca.cnf"

    @property
    def ca_serial_path(self) -> Path:
        return self.ca_dir / "rootCA.srl"

    @property
    def registry_path(self) -> Path:
        return self.data_dir / "config.json"

    def domain_dir(self, primary_domain: str) -> Path:
        """Storage directory for one primary domain's leaf artifacts."""
        return self.ssl_dir / primary_domain

    def distinguished_name(self, common_name: str) -> "DistinguishedName":
        """Build DN from config subject fields + common_name."""
        return DistinguishedName(
            country=self.country,
            state=self.state,
            locality=self.locality,
            organization=self.organization,
            organizational_unit=self.organizational_unit,
            common_name=common_name,
        )


@dataclass
class DistinguishedName:
    """X.509 Subject Distinguished Name."""

    country: str
    state: str
    locality: str
    organization: str
    organizational_unit: str
    common_name: str

    # Short names used in OpenSSL request configuration [dn] sections.
    FIELDS = (
        ("C", "country"),
        ("ST", "state"),
        ("L", "locality"),
        ("O", "organization"),
        ("OU", "organizational_unit"),
        ("CN", "common_name"),
    )

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for certificate generation."""
        return x509.Name(
            [
                x509.NameAttribute(oid.NameOID.COUNTRY_NAME, self.country),
                x509.NameAttribute(oid.NameOID.STATE_OR_PROVINCE_NAME, self.state),
                x509.NameAttribute(oid.NameOID.LOCALITY_NAME, self.locality),
                x509.NameAttribute(oid.NameOID.ORGANIZATION_NAME, self.organization),
                x509.NameAttribute(oid.NameOID.ORGANIZATIONAL_UNIT_NAME, self.organizational_unit),
                x509.NameAttribute(oid.NameOID.COMMON_NAME, self.common_name),
            ]
        )

    def to_config_entries(self) -> dict[str, str]:
        """Return OpenSSL [dn] section entries (C, ST, L, O, OU, CN)."""
        return {short: getattr(self, attr) for short, attr in self.FIELDS}

    @classmethod
    def from_config_entries(cls, entries: dict[str, str]) -> "DistinguishedName":
        """Build from an OpenSSL [dn] section mapping."""
        missing = [short for short, _ in cls.FIELDS if short not in entries]
        if missing:
            raise ValueError(f"dn section missing fields: {', '.join(missing)}")
        return cls(**{attr: entries[short] for short, attr in cls.FIELDS})

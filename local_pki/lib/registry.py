"""Certificate registry persisted in the host configuration store."""

import logging

from .config_store import ConfigStore
from .errors import NotFoundError
from .models import CertificateEntry, DomainCertificateRecord

logger = logging.getLogger(__name__)

CERTIFICATES_KEY = "certificates"


class CertificateRegistry:
    """Maps primary domain -> DomainCertificateRecord.

    Adds no locking of its own; callers serialize writes per primary domain.
    """

    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def _entries(self) -> dict[str, CertificateEntry]:
        return dict(self.store.get(CERTIFICATES_KEY, {}) or {})

    def get(self, primary_domain: str) -> DomainCertificateRecord | None:
        entry = self._entries().get(primary_domain)
        if entry is None:
            return None
        return DomainCertificateRecord.from_entry(primary_domain, entry)

    def list(self) -> dict[str, DomainCertificateRecord]:
        return {
            domain: DomainCertificateRecord.from_entry(domain, entry)
            for domain, entry in self._entries().items()
        }

    def upsert(self, record: DomainCertificateRecord) -> None:
        """Insert or replace the record for record.primary_domain."""
        entries = self._entries()
        entries[record.primary_domain] = record.to_entry()
        self.store.set(CERTIFICATES_KEY, entries)

    def remove(self, primary_domain: str) -> None:
        """Delete the record for primary_domain.

        Raises:
            NotFoundError: If no record exists
        """
        entries = self._entries()
        if primary_domain not in entries:
            raise NotFoundError(f"certificate for {primary_domain} not found")
        del entries[primary_domain]
        self.store.set(CERTIFICATES_KEY, entries)

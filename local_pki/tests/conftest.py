"""Test fixtures for local_pki tests."""

from pathlib import Path

import pytest

from local_pki.lib.certificate_authority import CertificateAuthority
from local_pki.lib.certificate_issuer import CertificateIssuer
from local_pki.lib.config import DistinguishedName, PkiConfig
from local_pki.lib.config_store import MemoryConfigStore
from local_pki.lib.inprocess_tool import CryptographyInvoker
from local_pki.lib.pki_manager import PkiManager
from local_pki.lib.registry import CertificateRegistry
from local_pki.lib.trust_installer import ManualTrustStrategy, TrustInstaller


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture
def pki_config(tmp_path: Path) -> PkiConfig:
    """Return test PKI configuration rooted in a temporary data directory."""
    return PkiConfig(
        data_dir=tmp_path / "data",
        app_name="Test PKI",
        organization="Test Org",
        key_size=2048,
        process_timeout=10.0,
    )


@pytest.fixture
def subject_dn() -> DistinguishedName:
    """Return test leaf distinguished name."""
    return DistinguishedName(
        country="US",
        state="Local",
        locality="Local",
        organization="Test Org",
        organizational_unit="Development",
        common_name="myapp.test",
    )


@pytest.fixture
def invoker() -> CryptographyInvoker:
    """In-process crypto tool; no openssl binary needed."""
    return CryptographyInvoker(timeout=10.0)


@pytest.fixture
def config_store() -> MemoryConfigStore:
    return MemoryConfigStore()


@pytest.fixture
def registry(config_store: MemoryConfigStore) -> CertificateRegistry:
    return CertificateRegistry(config_store)


@pytest.fixture
def authority(pki_config: PkiConfig, invoker: CryptographyInvoker) -> CertificateAuthority:
    return CertificateAuthority(pki_config, invoker)


@pytest.fixture
def issuer(
    pki_config: PkiConfig,
    authority: CertificateAuthority,
    invoker: CryptographyInvoker,
    registry: CertificateRegistry,
) -> CertificateIssuer:
    return CertificateIssuer(pki_config, authority, invoker, registry)


@pytest.fixture
async def ready_issuer(authority: CertificateAuthority, issuer: CertificateIssuer) -> CertificateIssuer:
    """Issuer whose root CA has already been created."""
    await authority.ensure_created()
    return issuer


@pytest.fixture
def trust_installer(invoker: CryptographyInvoker) -> TrustInstaller:
    """Trust installer that never touches a real trust store."""
    return TrustInstaller(invoker, "Test PKI", strategy=ManualTrustStrategy("Test PKI"))


@pytest.fixture
def manager(
    pki_config: PkiConfig,
    config_store: MemoryConfigStore,
    invoker: CryptographyInvoker,
    trust_installer: TrustInstaller,
) -> PkiManager:
    return PkiManager(pki_config, config_store, invoker=invoker, trust_installer=trust_installer)


@pytest.fixture
async def ready_manager(manager: PkiManager) -> PkiManager:
    """Manager after initialize()."""
    await manager.initialize()
    return manager

"""Tests for leaf certificate issuance."""

import asyncio
import os
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from cryptography import x509

from local_pki.lib.cert_utils import get_san_dns_names, is_issued_by, load_certificate
from local_pki.lib.certificate_authority import CertificateAuthority
from local_pki.lib.certificate_issuer import (
    CertificateIssuer,
    sanitize_cert_name,
    swap_in,
    validate_domains,
)
from local_pki.lib.config import PkiConfig
from local_pki.lib.crypto_tool import OpenSSLInvoker
from local_pki.lib.errors import CryptoToolError, StateError, ValidationError
from local_pki.lib.inprocess_tool import CryptographyInvoker
from local_pki.lib.registry import CertificateRegistry
from local_pki.lib.request_config import RequestConfig


class FailingSignInvoker(CryptographyInvoker):
    """Creates key and CSR, then fails at the CA signing step."""

    async def run_ca_sign(self, *args, **kwargs) -> None:
        raise CryptoToolError("openssl exited with status 1", "unable to load CA private key")


class ExtraSanInvoker(CryptographyInvoker):
    """Signs with a request config that names an extra host."""

    async def run_ca_sign(self, *args, **kwargs) -> None:
        config_path = kwargs["request_config_path"]
        request = RequestConfig.load(config_path)
        request.alt_names.append("www.example.com")
        request.write(config_path)
        await super().run_ca_sign(*args, **kwargs)


def _files_under(path: Path) -> list[Path]:
    if not path.exists():
        return []
    return [p for p in path.rglob("*") if p.is_file()]


class TestValidateDomains:
    """Tests for validate_domains()."""

    def test_returns_list_in_order(self) -> None:
        assert validate_domains(("a.test", "b.test")) == ["a.test", "b.test"]

    @pytest.mark.parametrize("domains", [[], (), "myapp.test"])
    def test_requires_a_domain_list(self, domains) -> None:
        with pytest.raises(ValidationError, match="at least one domain"):
            validate_domains(domains)

    @pytest.mark.parametrize("bad", ["", "   ", " a.test", None])
    def test_rejects_blank_or_padded_entries(self, bad) -> None:
        with pytest.raises(ValidationError, match="invalid domain"):
            validate_domains(["ok.test", bad])

    @pytest.mark.parametrize(
        "domain",
        [
            "*.b.test\nDNS.60 = www.example.com",
            "a.test\r",
            "a.test = x",
            "[alt_names]",
            "a.test#comment",
            "a.test;x",
            "a..test",
            "-a.test",
            "a.*.test",
            "*.*.a.test",
            "a" * 64 + ".test",
        ],
    )
    def test_rejects_entries_that_are_not_host_names(self, domain: str) -> None:
        with pytest.raises(ValidationError, match="invalid domain"):
            validate_domains(["ok.test", domain])

    @pytest.mark.parametrize("domain", ["localhost", "my_app.test", "*.api.test", "xn--bcher-kva.test", "API.Test"])
    def test_accepts_host_names(self, domain: str) -> None:
        assert validate_domains([domain]) == [domain]

    @pytest.mark.parametrize("primary", [".", "..", "a/b.test", "a\\b.test", "ca", "CA"])
    def test_rejects_primary_outside_its_directory(self, primary: str) -> None:
        with pytest.raises(ValidationError):
            validate_domains([primary])


class TestSanitizeCertName:
    """Tests for sanitize_cert_name()."""

    def test_keeps_safe_characters(self) -> None:
        assert sanitize_cert_name("my-app.test") == "my-app.test"

    def test_replaces_unsafe_characters(self) -> None:
        assert sanitize_cert_name("*.my app:test") == "_.my_app_test"


@pytest.mark.anyio
class TestIssue:
    """Tests for CertificateIssuer.issue()."""

    async def test_issue_single_domain(
        self, ready_issuer: CertificateIssuer, registry: CertificateRegistry, pki_config: PkiConfig
    ) -> None:
        record = await ready_issuer.issue(["myapp.test"])

        assert record.primary_domain == "myapp.test"
        assert record.domains == ["myapp.test"]
        assert record.key_path == pki_config.ssl_dir / "myapp.test" / "key.pem"
        assert record.cert_path == pki_config.ssl_dir / "myapp.test" / "cert.pem"
        assert record.key_path.is_file()
        assert registry.get("myapp.test") == record

        cert = load_certificate(record.cert_path)
        assert get_san_dns_names(cert) == ["myapp.test", "*.myapp.test"]
        assert cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)[0].value == "myapp.test"

    async def test_certificate_chains_to_root(self, ready_issuer: CertificateIssuer, pki_config: PkiConfig) -> None:
        record = await ready_issuer.issue(["myapp.test"])

        root = load_certificate(pki_config.ca_cert_path)
        leaf = load_certificate(record.cert_path)
        assert is_issued_by(leaf, root)
        assert leaf.issuer == root.subject
        assert leaf.extensions.get_extension_for_class(x509.BasicConstraints).value.ca is False

    async def test_san_covers_every_domain_and_wildcard(self, ready_issuer: CertificateIssuer) -> None:
        domains = ["shop.test", "api.shop.test", "admin.test"]

        record = await ready_issuer.issue(domains)

        sans = get_san_dns_names(load_certificate(record.cert_path))
        assert sans == [
            "shop.test",
            "api.shop.test",
            "admin.test",
            "*.shop.test",
            "*.api.shop.test",
            "*.admin.test",
        ]

    async def test_explicit_wildcard_gets_no_double_wildcard(self, ready_issuer: CertificateIssuer) -> None:
        record = await ready_issuer.issue(["api.test", "*.api.test"])

        sans = get_san_dns_names(load_certificate(record.cert_path))
        assert len(sans) == 3
        assert set(sans) == {"api.test", "*.api.test"}
        assert not any(name.startswith("*.*.") for name in sans)

    async def test_expiry_is_leaf_validity_after_creation(self, ready_issuer: CertificateIssuer) -> None:
        record = await ready_issuer.issue(["myapp.test"])

        assert record.expires_at - record.created_at == timedelta(days=825)
        lifetime = load_certificate(record.cert_path)
        assert lifetime.not_valid_after_utc - lifetime.not_valid_before_utc == timedelta(days=825)

    async def test_intermediate_artifacts_use_sanitized_name(
        self, ready_issuer: CertificateIssuer, pki_config: PkiConfig
    ) -> None:
        await ready_issuer.issue(["*.app.test"])

        domain_dir = pki_config.ssl_dir / "*.app.test"
        assert (domain_dir / "_.app.test.csr").is_file()
        assert (domain_dir / "_.app.test.cnf").is_file()
        assert not list(domain_dir.glob("*.partial"))

    async def test_empty_domains_writes_nothing(
        self, ready_issuer: CertificateIssuer, registry: CertificateRegistry, pki_config: PkiConfig
    ) -> None:
        before = _files_under(pki_config.ssl_dir)

        with pytest.raises(ValidationError):
            await ready_issuer.issue([])

        assert _files_under(pki_config.ssl_dir) == before
        assert registry.list() == {}

    async def test_issue_without_ca_writes_nothing(
        self, issuer: CertificateIssuer, registry: CertificateRegistry, pki_config: PkiConfig
    ) -> None:
        with pytest.raises(StateError):
            await issuer.issue(["myapp.test"])

        assert _files_under(pki_config.data_dir) == []
        assert registry.get("myapp.test") is None

    async def test_reissue_replaces_files_and_record(
        self, ready_issuer: CertificateIssuer, registry: CertificateRegistry
    ) -> None:
        first = await ready_issuer.issue(["myapp.test"])
        first_serial = load_certificate(first.cert_path).serial_number

        second = await ready_issuer.issue(["myapp.test", "www.myapp.test"])

        assert second.cert_path == first.cert_path
        cert = load_certificate(second.cert_path)
        assert cert.serial_number != first_serial
        assert "www.myapp.test" in get_san_dns_names(cert)
        assert list(registry.list()) == ["myapp.test"]
        assert registry.get("myapp.test").domains == ["myapp.test", "www.myapp.test"]

    async def test_serials_are_distinct(self, ready_issuer: CertificateIssuer) -> None:
        records = [await ready_issuer.issue([f"app{i}.test"]) for i in range(3)]

        serials = {load_certificate(r.cert_path).serial_number for r in records}
        assert len(serials) == 3

    async def test_concurrent_issuance_for_distinct_domains(
        self, ready_issuer: CertificateIssuer, registry: CertificateRegistry
    ) -> None:
        domains = [f"svc{i}.test" for i in range(4)]

        records = await asyncio.gather(*(ready_issuer.issue([d]) for d in domains))

        assert sorted(registry.list()) == sorted(domains)
        serials = {load_certificate(r.cert_path).serial_number for r in records}
        assert len(serials) == 4
        for record in records:
            assert get_san_dns_names(load_certificate(record.cert_path))[0] == record.primary_domain

    async def test_concurrent_issuance_for_same_domain(
        self, ready_issuer: CertificateIssuer, registry: CertificateRegistry
    ) -> None:
        await asyncio.gather(
            ready_issuer.issue(["myapp.test"]),
            ready_issuer.issue(["myapp.test", "www.myapp.test"]),
        )

        record = registry.get("myapp.test")
        assert record is not None
        assert get_san_dns_names(load_certificate(record.cert_path))[: len(record.domains)] == record.domains


@pytest.mark.anyio
class TestIssueFailure:
    """Tests for issuance when the crypto tool fails."""

    @pytest.fixture
    async def failing_issuer(
        self, pki_config: PkiConfig, authority: CertificateAuthority, registry: CertificateRegistry
    ) -> CertificateIssuer:
        await authority.ensure_created()
        return CertificateIssuer(pki_config, authority, FailingSignInvoker(timeout=10.0), registry)

    async def test_failure_registers_nothing(
        self, failing_issuer: CertificateIssuer, registry: CertificateRegistry, pki_config: PkiConfig
    ) -> None:
        with pytest.raises(CryptoToolError) as exc_info:
            await failing_issuer.issue(["myapp.test"])

        assert exc_info.value.output == "unable to load CA private key"
        assert registry.get("myapp.test") is None
        assert not pki_config.domain_dir("myapp.test").exists()

    async def test_failed_reissue_keeps_previous_certificate(
        self,
        ready_issuer: CertificateIssuer,
        failing_issuer: CertificateIssuer,
        registry: CertificateRegistry,
    ) -> None:
        original = await ready_issuer.issue(["myapp.test"])
        cert_bytes = original.cert_path.read_bytes()
        key_bytes = original.key_path.read_bytes()

        with pytest.raises(CryptoToolError):
            await failing_issuer.issue(["myapp.test", "www.myapp.test"])

        assert original.cert_path.read_bytes() == cert_bytes
        assert original.key_path.read_bytes() == key_bytes
        assert registry.get("myapp.test") == original
        assert not list(original.cert_path.parent.glob("*.partial"))

    async def test_mismatched_signed_certificate_is_rejected(
        self, pki_config: PkiConfig, authority: CertificateAuthority, registry: CertificateRegistry
    ) -> None:
        await authority.ensure_created()
        issuer = CertificateIssuer(pki_config, authority, ExtraSanInvoker(timeout=10.0), registry)

        with pytest.raises(CryptoToolError, match="unexpected subject alternative names") as exc_info:
            await issuer.issue(["myapp.test"])

        assert "www.example.com" in exc_info.value.output
        assert registry.get("myapp.test") is None
        assert not pki_config.domain_dir("myapp.test").exists()

    async def test_corrupt_serial_file_leaves_nothing_behind(
        self, ready_issuer: CertificateIssuer, registry: CertificateRegistry, pki_config: PkiConfig
    ) -> None:
        pki_config.ca_serial_path.write_text("zz\n")

        with pytest.raises(StateError, match="corrupt serial file"):
            await ready_issuer.issue(["c.test"])

        assert not pki_config.domain_dir("c.test").exists()
        assert registry.get("c.test") is None

    async def test_failed_swap_restores_previous_key_and_certificate(
        self, ready_issuer: CertificateIssuer, registry: CertificateRegistry
    ) -> None:
        original = await ready_issuer.issue(["myapp.test"])
        cert_bytes = original.cert_path.read_bytes()
        key_bytes = original.key_path.read_bytes()
        real_replace = os.replace

        def fail_on_new_cert(source, target):
            if Path(source).name == "cert.pem.partial":
                raise OSError("disk full")
            real_replace(source, target)

        with patch("local_pki.lib.certificate_issuer.os.replace", side_effect=fail_on_new_cert):
            with pytest.raises(OSError, match="disk full"):
                await ready_issuer.issue(["myapp.test", "www.myapp.test"])

        assert original.key_path.read_bytes() == key_bytes
        assert original.cert_path.read_bytes() == cert_bytes
        assert registry.get("myapp.test") == original
        leftovers = sorted(p.name for p in original.cert_path.parent.iterdir() if ".pem" in p.name)
        assert leftovers == ["cert.pem", "key.pem"]


@pytest.mark.anyio
class TestHostNameInjection:
    """Entries that would add lines to the request config never reach either crypto tool."""

    INJECTED = ["a.test", "*.b.test\nDNS.60 = www.example.com"]

    async def test_in_process_tool(
        self, ready_issuer: CertificateIssuer, registry: CertificateRegistry, pki_config: PkiConfig
    ) -> None:
        before = _files_under(pki_config.ssl_dir)

        with pytest.raises(ValidationError, match="invalid domain"):
            await ready_issuer.issue(self.INJECTED)

        assert _files_under(pki_config.ssl_dir) == before
        assert registry.list() == {}

    async def test_openssl_tool(
        self,
        pki_config: PkiConfig,
        authority: CertificateAuthority,
        registry: CertificateRegistry,
    ) -> None:
        await authority.ensure_created()
        issuer = CertificateIssuer(pki_config, authority, OpenSSLInvoker(timeout=10.0), registry)
        before = _files_under(pki_config.ssl_dir)

        with patch("local_pki.lib.crypto_tool.run_process", new_callable=AsyncMock) as mock_run:
            with pytest.raises(ValidationError, match="invalid domain"):
                await issuer.issue(self.INJECTED)

        mock_run.assert_not_awaited()
        assert _files_under(pki_config.ssl_dir) == before
        assert registry.list() == {}


class TestSwapIn:
    """Tests for swap_in()."""

    def test_moves_all_files_and_drops_backups(self, tmp_path: Path) -> None:
        (tmp_path / "key.pem").write_text("old key")
        (tmp_path / "key.pem.partial").write_text("new key")
        (tmp_path / "cert.pem.partial").write_text("new cert")

        swap_in(
            [
                (tmp_path / "key.pem.partial", tmp_path / "key.pem"),
                (tmp_path / "cert.pem.partial", tmp_path / "cert.pem"),
            ]
        )

        assert (tmp_path / "key.pem").read_text() == "new key"
        assert (tmp_path / "cert.pem").read_text() == "new cert"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["cert.pem", "key.pem"]

    def test_missing_second_source_restores_first_target(self, tmp_path: Path) -> None:
        (tmp_path / "key.pem").write_text("old key")
        (tmp_path / "cert.pem").write_text("old cert")
        (tmp_path / "key.pem.partial").write_text("new key")

        with pytest.raises(OSError):
            swap_in(
                [
                    (tmp_path / "key.pem.partial", tmp_path / "key.pem"),
                    (tmp_path / "cert.pem.partial", tmp_path / "cert.pem"),
                ]
            )

        assert (tmp_path / "key.pem").read_text() == "old key"
        assert (tmp_path / "cert.pem").read_text() == "old cert"


@pytest.mark.anyio
class TestDomainLock:
    """Tests for CertificateIssuer.domain_lock()."""

    async def test_locks_are_dropped_after_use(self, ready_issuer: CertificateIssuer) -> None:
        await asyncio.gather(
            ready_issuer.issue(["a.test"]),
            ready_issuer.issue(["a.test", "www.a.test"]),
            ready_issuer.issue(["b.test"]),
        )

        assert ready_issuer._domain_locks == {}

    async def test_lock_excludes_concurrent_holders(self, issuer: CertificateIssuer) -> None:
        events: list[str] = []

        async def hold(name: str) -> None:
            async with issuer.domain_lock("a.test"):
                events.append(f"{name} in")
                await asyncio.sleep(0.01)
                events.append(f"{name} out")

        await asyncio.gather(hold("first"), hold("second"))

        assert events == ["first in", "first out", "second in", "second out"]
        assert issuer._domain_locks == {}

"""In-process implementation of the crypto tool contract using ``cryptography``."""

from pathlib import Path

from .cert_utils import (
    deserialize_certificate,
    deserialize_csr,
    deserialize_private_key,
    generate_private_key,
    generate_serial_number,
    serialize_certificate,
    serialize_csr,
    serialize_private_key,
    write_file_atomic,
)
from .certificate_builder import CertificateBuilder
from .crypto_tool import CryptoToolInvoker
from .errors import CryptoToolError
from .request_config import RequestConfig


def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise CryptoToolError(f"cannot read {path}", str(e)) from e


class CryptographyInvoker(CryptoToolInvoker):
    """Performs key generation and signing in-process.

    Reads the same request configuration files as OpenSSLInvoker, so the CA
    and issuer do not depend on which implementation is in use. Library
    errors surface as CryptoToolError. Trust commands still spawn a process.
    """

    async def run_key_gen(self, output_path: Path, bits: int) -> None:
        try:
            key = generate_private_key(bits)
        except ValueError as e:
            raise CryptoToolError("key generation failed", str(e)) from e
        write_file_atomic(output_path, serialize_private_key(key), mode=0o600)

    async def run_csr(self, key_path: Path, output_csr_path: Path, request_config_path: Path) -> None:
        try:
            key = deserialize_private_key(_read(key_path))
            request = RequestConfig.load(request_config_path)
            csr = CertificateBuilder.build_csr(request, key)
        except ValueError as e:
            raise CryptoToolError("CSR creation failed", str(e)) from e
        output_csr_path.write_bytes(serialize_csr(csr))

    async def run_self_sign(
        self,
        key_path: Path,
        output_cert_path: Path,
        request_config_path: Path,
        validity_days: int,
        extension_section: str,
    ) -> None:
        try:
            key = deserialize_private_key(_read(key_path))
            request = RequestConfig.load(request_config_path, extension_section)
            cert = CertificateBuilder.build_root_ca(
                request=request,
                private_key=key,
                validity_days=validity_days,
                serial_number=generate_serial_number(),
            )
        except ValueError as e:
            raise CryptoToolError("self-signing failed", str(e)) from e
        output_cert_path.write_bytes(serialize_certificate(cert))

    async def run_ca_sign(
        self,
        csr_path: Path,
        ca_cert_path: Path,
        ca_key_path: Path,
        output_cert_path: Path,
        request_config_path: Path,
        validity_days: int,
        extension_section: str,
        serial: int,
    ) -> None:
        try:
            csr = deserialize_csr(_read(csr_path))
            ca_cert = deserialize_certificate(_read(ca_cert_path))
            ca_key = deserialize_private_key(_read(ca_key_path))
            request = RequestConfig.load(request_config_path, extension_section)
            cert = CertificateBuilder.build_leaf_certificate(
                csr=csr,
                request=request,
                issuer_cert=ca_cert,
                issuer_key=ca_key,
                validity_days=validity_days,
                serial_number=serial,
            )
        except ValueError as e:
            raise CryptoToolError("CA signing failed", str(e)) from e
        output_cert_path.write_bytes(serialize_certificate(cert))

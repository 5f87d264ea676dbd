"""Certificate builder for X.509 certificate construction from request configurations."""

from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from .request_config import ALT_NAMES_SECTION, RequestConfig

# OpenSSL keyUsage names -> cryptography KeyUsage keyword arguments
KEY_USAGE_FLAGS = {
    "digitalSignature": "digital_signature",
    "nonRepudiation": "content_commitment",
    "keyEncipherment": "key_encipherment",
    "dataEncipherment": "data_encipherment",
    "keyAgreement": "key_agreement",
    "keyCertSign": "key_cert_sign",
    "cRLSign": "crl_sign",
    "encipherOnly": "encipher_only",
    "decipherOnly": "decipher_only",
}

ExtensionSpec = tuple[x509.ExtensionType, bool]


def _split_critical(value: str) -> tuple[bool, list[str]]:
    parts = [part.strip() for part in value.split(",") if part.strip()]
    critical = bool(parts) and parts[0] == "critical"
    return critical, parts[1:] if critical else parts


def _basic_constraints(parts: list[str]) -> x509.BasicConstraints:
    options = dict(part.split(":", 1) for part in parts)
    ca = options.get("CA", "FALSE").upper() == "TRUE"
    path_length = int(options["pathlen"]) if ca and "pathlen" in options else None
    return x509.BasicConstraints(ca=ca, path_length=path_length)


def _key_usage(parts: list[str]) -> x509.KeyUsage:
    flags = {kwarg: False for kwarg in KEY_USAGE_FLAGS.values()}
    for part in parts:
        if part not in KEY_USAGE_FLAGS:
            raise ValueError(f"unsupported keyUsage value: {part}")
        flags[KEY_USAGE_FLAGS[part]] = True
    return x509.KeyUsage(**flags)


def _subject_alt_name(parts: list[str], alt_names: list[str]) -> x509.SubjectAlternativeName:
    names: list[str] = []
    for part in parts:
        if part == f"@{ALT_NAMES_SECTION}":
            names.extend(alt_names)
        elif part.startswith("DNS:"):
            names.append(part[len("DNS:") :])
        else:
            raise ValueError(f"unsupported subjectAltName value: {part}")
    return x509.SubjectAlternativeName([x509.DNSName(name) for name in names])


def build_extensions(
    request: RequestConfig,
    subject_public_key: RSAPublicKey,
    issuer_public_key: RSAPublicKey,
) -> list[ExtensionSpec]:
    """Translate the request's OpenSSL extension section into cryptography extensions.

    Args:
        request: Parsed request configuration
        subject_public_key: Key the certificate is issued for
        issuer_public_key: Key of the signing CA (for authorityKeyIdentifier)

    Returns:
        List of (extension, critical) pairs in configuration order

    Raises:
        ValueError: If the section contains an unsupported extension
    """
    extensions: list[ExtensionSpec] = []
    for name, value in request.extensions.items():
        critical, parts = _split_critical(value)
        if name == "basicConstraints":
            extensions.append((_basic_constraints(parts), critical))
        elif name == "keyUsage":
            extensions.append((_key_usage(parts), critical))
        elif name == "subjectAltName":
            extensions.append((_subject_alt_name(parts, request.alt_names), critical))
        elif name == "subjectKeyIdentifier":
            extensions.append(
                (x509.SubjectKeyIdentifier.from_public_key(subject_public_key), critical)
            )
        elif name == "authorityKeyIdentifier":
            extensions.append(
                (x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_public_key), critical)
            )
        else:
            raise ValueError(f"unsupported extension: {name}")
    return extensions


class CertificateBuilder:
    """Builds the root CA certificate, leaf CSRs and CA-signed leaf certificates."""

    @staticmethod
    def build_root_ca(
        request: RequestConfig,
        private_key: RSAPrivateKey,
        validity_days: int,
        serial_number: int,
    ) -> x509.Certificate:
        """Build self-signed Root CA certificate.

        Args:
            request: Request configuration with subject and CA extension section
            private_key: RSA private key for signing
            validity_days: Certificate validity period in days
            serial_number: Certificate serial number

        Returns:
            Self-signed X.509 certificate with the configured CA extensions
        """
        subject = request.subject.to_x509_name()
        public_key = private_key.public_key()
        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
        )
        for extension, critical in build_extensions(request, public_key, public_key):
            builder = builder.add_extension(extension, critical=critical)

        return builder.sign(private_key, hashes.SHA256())

    @staticmethod
    def build_csr(request: RequestConfig, private_key: RSAPrivateKey) -> x509.CertificateSigningRequest:
        """Build CSR with the request subject and its requested extensions."""
        public_key = private_key.public_key()
        builder = x509.CertificateSigningRequestBuilder().subject_name(request.subject.to_x509_name())
        for extension, critical in build_extensions(request, public_key, public_key):
            builder = builder.add_extension(extension, critical=critical)
        return builder.sign(private_key, hashes.SHA256())

    @staticmethod
    def build_leaf_certificate(
        csr: x509.CertificateSigningRequest,
        request: RequestConfig,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        validity_days: int,
        serial_number: int,
    ) -> x509.Certificate:
        """Build leaf certificate from CSR, signed by the root CA.

        Extensions come from the request configuration section chosen at
        signing time, not from the CSR, mirroring ``openssl x509 -extfile``.

        Args:
            csr: Certificate signing request
            request: Request configuration with the extension section to apply
            issuer_cert: Root CA certificate (issuer)
            issuer_key: Root CA private key for signing
            validity_days: Certificate validity period in days
            serial_number: Serial allocated by the CA serial counter

        Returns:
            X.509 end-entity certificate signed by the root CA

        Raises:
            ValueError: If CSR signature is invalid or its key is not RSA
        """
        if not csr.is_signature_valid:
            raise ValueError("CSR signature validation failed")

        public_key = csr.public_key()
        if not isinstance(public_key, RSAPublicKey):
            raise ValueError("CSR public key must be RSA type")

        issuer_public_key = issuer_key.public_key()
        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
        )
        for extension, critical in build_extensions(request, public_key, issuer_public_key):
            builder = builder.add_extension(extension, critical=critical)

        return builder.sign(issuer_key, hashes.SHA256())

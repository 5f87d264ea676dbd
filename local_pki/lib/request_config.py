"""OpenSSL request configuration files for CA and leaf certificates."""

import configparser
from dataclasses import dataclass, field
from pathlib import Path

from .config import DistinguishedName

CA_EXTENSION_SECTION = "v3_ca"
LEAF_EXTENSION_SECTION = "v3_req"
ALT_NAMES_SECTION = "alt_names"

CA_EXTENSIONS = {
    "basicConstraints": "critical, CA:TRUE",
    "keyUsage": "critical, digitalSignature, cRLSign, keyCertSign",
    "subjectKeyIdentifier": "hash",
    "authorityKeyIdentifier": "keyid:always, issuer",
}

LEAF_EXTENSIONS = {
    "basicConstraints": "CA:FALSE",
    "keyUsage": "nonRepudiation, digitalSignature, keyEncipherment",
    "subjectAltName": f"@{ALT_NAMES_SECTION}",
}


def _entry(key: str, value: object) -> str:
    """One ``key = value`` line; values never span lines."""
    text = str(value)
    if any(not char.isprintable() for char in text):
        raise ValueError(f"request config value for {key} contains control characters: {text!r}")
    return f"{key} = {text}"


def build_san_list(domains: list[str]) -> list[str]:
    """Build the SAN DNS entries for a leaf certificate.

    Every requested domain is listed first, in order, followed by a
    synthesized ``*.<domain>`` for each entry that is not already a wildcard.
    Synthesized entries are not de-duplicated against literal ones.
    """
    wildcards = [f"*.{domain}" for domain in domains if "*" not in domain]
    return [*domains, *wildcards]


@dataclass
class RequestConfig:
    """Request configuration consumed by ``openssl req`` / ``openssl x509``.

    The rendered file holds the subject and one named extension section;
    ``load`` reads back files produced by ``render``.
    """

    subject: DistinguishedName
    extension_section: str | None = None
    extensions: dict[str, str] = field(default_factory=dict)
    alt_names: list[str] = field(default_factory=list)
    default_bits: int = 2048

    @classmethod
    def for_root_ca(cls, subject: DistinguishedName, bits: int = 2048) -> "RequestConfig":
        return cls(
            subject=subject,
            extension_section=CA_EXTENSION_SECTION,
            extensions=dict(CA_EXTENSIONS),
            default_bits=bits,
        )

    @classmethod
    def for_leaf(
        cls, subject: DistinguishedName, domains: list[str], bits: int = 2048
    ) -> "RequestConfig":
        if not domains:
            return cls(subject=subject, default_bits=bits)
        return cls(
            subject=subject,
            extension_section=LEAF_EXTENSION_SECTION,
            extensions=dict(LEAF_EXTENSIONS),
            alt_names=build_san_list(domains),
            default_bits=bits,
        )

    @property
    def is_leaf_request(self) -> bool:
        return self.extension_section == LEAF_EXTENSION_SECTION

    def render(self) -> str:
        """Render as OpenSSL configuration text.

        Raises:
            ValueError: If a value contains a line break or other control character
        """
        lines = [
            "[req]",
            _entry("default_bits", self.default_bits),
            "prompt = no",
            "default_md = sha256",
            "distinguished_name = dn",
        ]
        # Leaf CSRs carry their extensions; the CA applies them at signing via -extensions.
        if self.is_leaf_request:
            lines.append(f"req_extensions = {LEAF_EXTENSION_SECTION}")

        lines += ["", "[dn]"]
        lines += [_entry(key, value) for key, value in self.subject.to_config_entries().items()]

        if self.extension_section:
            lines += ["", f"[{self.extension_section}]"]
            lines += [_entry(key, value) for key, value in self.extensions.items()]

        if self.alt_names:
            lines += ["", f"[{ALT_NAMES_SECTION}]"]
            lines += [_entry(f"DNS.{index}", name) for index, name in enumerate(self.alt_names, start=1)]

        return "\n".join(lines) + "\n"

    def write(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render())
        return path

    @classmethod
    def load(cls, path: Path, extension_section: str | None = None) -> "RequestConfig":
        """Parse a configuration file written by ``render``.

        Args:
            path: Configuration file path
            extension_section: Section to read extensions from; defaults to the
                ``req_extensions`` section when present

        Raises:
            ValueError: If the file lacks a [dn] section or the requested section
        """
        parser = configparser.ConfigParser(interpolation=None, delimiters=("=",))
        parser.optionxform = str  # type: ignore[assignment,method-assign]
        try:
            parser.read_string(path.read_text(), source=str(path))
        except (OSError, configparser.Error) as e:
            raise ValueError(f"cannot read request config {path}: {e}") from e

        if not parser.has_section("dn"):
            raise ValueError(f"request config has no [dn] section: {path}")
        subject = DistinguishedName.from_config_entries(dict(parser.items("dn")))

        default_bits = 2048
        section = extension_section
        if parser.has_section("req"):
            default_bits = parser.getint("req", "default_bits", fallback=2048)
            if section is None:
                section = parser.get("req", "req_extensions", fallback=None)

        extensions: dict[str, str] = {}
        if section is not None:
            if not parser.has_section(section):
                raise ValueError(f"request config has no [{section}] section: {path}")
            extensions = dict(parser.items(section))

        alt_names: list[str] = []
        if parser.has_section(ALT_NAMES_SECTION):
            numbered = [
                (int(key.split(".", 1)[1]), value)
                for key, value in parser.items(ALT_NAMES_SECTION)
                if key.startswith("DNS.")
            ]
            alt_names = [value for _, value in sorted(numbered)]

        return cls(
            subject=subject,
            extension_section=section,
            extensions=extensions,
            alt_names=alt_names,
            default_bits=default_bits,
        )

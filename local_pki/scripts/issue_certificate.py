#!/usr/bin/env python3
"""Issue a leaf certificate for one or more local development domains."""

import argparse
import asyncio
import sys

from local_pki.lib.cert_utils import get_certificate_serial_hex, load_certificate
from local_pki.lib.errors import PkiError
from local_pki.lib.logging_config import LOGGER
from local_pki.lib.models import DomainCertificateRecord
from local_pki.lib.pki_manager import PkiManager
from local_pki.scripts.bootstrap_ca import add_common_arguments, build_manager


async def issue(manager: PkiManager, domains: list[str]) -> DomainCertificateRecord:
    await manager.initialize()
    return await manager.issue_certificate(domains)


def main(argv: list[str] | None = None) -> int:
    """Issue certificate for the given domains; the first one is the primary domain.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Issue leaf certificate")
    parser.add_argument("domains", nargs="+", help="Domains to cover, primary first")
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        manager = build_manager(args)

        LOGGER.info("Issuing certificate for: %s", ", ".join(args.domains))
        record = asyncio.run(issue(manager, args.domains))

        LOGGER.info("Certificate created:")
        LOGGER.info("  Domains: %s", ", ".join(record.domains))
        LOGGER.info("  Key: %s", record.key_path)
        LOGGER.info("  Cert: %s", record.cert_path)
        LOGGER.info("  Serial: %s", get_certificate_serial_hex(load_certificate(record.cert_path)))
        LOGGER.info("  Expires: %s", record.expires_at.isoformat())
        return 0

    except (PkiError, ValueError, OSError) as e:
        LOGGER.error("Certificate issuance failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

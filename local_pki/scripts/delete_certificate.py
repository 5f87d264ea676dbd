#!/usr/bin/env python3
"""Delete a domain's certificate files and registry record."""

import argparse
import asyncio
import sys

from local_pki.lib.errors import NotFoundError, PkiError
from local_pki.lib.logging_config import LOGGER
from local_pki.scripts.bootstrap_ca import add_common_arguments, build_manager


def main(argv: list[str] | None = None) -> int:
    """Delete the certificate registered for a primary domain.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Delete leaf certificate")
    parser.add_argument("domain", help="Primary domain of the certificate")
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        manager = build_manager(args)
        asyncio.run(manager.delete_certificate(args.domain))
        LOGGER.info("Certificate for %s deleted", args.domain)
        return 0

    except NotFoundError as e:
        LOGGER.error("Nothing to delete: %s", e)
        return 1
    except (PkiError, ValueError, OSError) as e:
        LOGGER.error("Certificate deletion failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

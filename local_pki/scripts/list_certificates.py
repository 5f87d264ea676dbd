#!/usr/bin/env python3
"""Print registered certificates as JSON."""

import argparse
import json
import sys

from local_pki.lib.logging_config import LOGGER
from local_pki.scripts.bootstrap_ca import add_common_arguments, build_manager


def main(argv: list[str] | None = None) -> int:
    """List certificates in the registry.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="List issued certificates")
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        manager = build_manager(args)
        certificates = {
            domain: record.to_entry() for domain, record in manager.list_certificates().items()
        }
    except (ValueError, OSError) as e:
        LOGGER.error("Could not read certificate registry: %s", e)
        return 1

    print(json.dumps(certificates, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""External process layer for the OpenSSL toolkit and OS trust-store commands."""

import abc
import asyncio
import logging
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from .errors import CryptoToolError, ToolNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
OPENSSL = "openssl"

# Suppress the console window flash when spawning from a GUI process on Windows.
_CREATION_FLAGS = getattr(subprocess, "CREATE_NO_WINDOW", 0)


@dataclass
class ProcessResult:
    """Captured output of a completed external process."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Diagnostic text: stderr when present, otherwise stdout."""
        return (self.stderr or self.stdout).strip()


async def run_process(command: str, args: list[str], timeout: float = DEFAULT_TIMEOUT) -> ProcessResult:
    """Spawn one process, wait for it and map its exit status.

    Args:
        command: Executable name or path
        args: Arguments passed without a shell
        timeout: Seconds to wait before killing the process

    Returns:
        ProcessResult of a process that exited 0

    Raises:
        ToolNotFoundError: If the executable cannot be found
        CryptoToolError: On non-zero exit, launch failure or timeout
    """
    logger.debug("Running %s %s", command, " ".join(args))
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            creationflags=_CREATION_FLAGS,
        )
    except FileNotFoundError as e:
        raise ToolNotFoundError(command) from e
    except OSError as e:
        raise CryptoToolError(f"{command} could not be started", str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise CryptoToolError(f"{command} timed out after {timeout:g}s") from e

    result = ProcessResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    if result.returncode != 0:
        raise CryptoToolError(f"{command} exited with status {result.returncode}", result.output)
    return result


def resolve_openssl_binary(resource_path: Path | None, platform: str = sys.platform) -> str:
    """Prefer an OpenSSL binary bundled under resource_path, else the one on PATH."""
    if resource_path is not None:
        name = "openssl.exe" if platform == "win32" else "openssl"
        bundled = resource_path / "openssl" / name
        if bundled.is_file():
            return str(bundled)
    return OPENSSL


class CryptoToolInvoker(abc.ABC):
    """Cryptographic primitive operations used by the CA and the issuer.

    Every operation either completes or raises CryptoToolError /
    ToolNotFoundError. Nothing is retried.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    @abc.abstractmethod
    async def run_key_gen(self, output_path: Path, bits: int) -> None:
        """Generate an RSA private key at output_path."""

    @abc.abstractmethod
    async def run_csr(self, key_path: Path, output_csr_path: Path, request_config_path: Path) -> None:
        """Create a CSR for key_path using the request configuration."""

    @abc.abstractmethod
    async def run_self_sign(
        self,
        key_path: Path,
        output_cert_path: Path,
        request_config_path: Path,
        validity_days: int,
        extension_section: str,
    ) -> None:
        """Create a self-signed certificate with the named extension section."""

    @abc.abstractmethod
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
        """Sign csr_path with the CA, applying the named extension section."""

    async def run_trust_command(self, command: str, args: list[str]) -> ProcessResult:
        """Run an OS trust-store command."""
        return await run_process(command, args, timeout=self.timeout)


class OpenSSLInvoker(CryptoToolInvoker):
    """Drives the ``openssl`` command line toolkit."""

    def __init__(self, binary: str = OPENSSL, timeout: float = DEFAULT_TIMEOUT) -> None:
        super().__init__(timeout)
        self.binary = binary

    async def _openssl(self, args: list[str]) -> ProcessResult:
        return await run_process(self.binary, args, timeout=self.timeout)

    async def run_key_gen(self, output_path: Path, bits: int) -> None:
        await self._openssl(["genrsa", "-out", str(output_path), str(bits)])

    async def run_csr(self, key_path: Path, output_csr_path: Path, request_config_path: Path) -> None:
        await self._openssl(
            [
                "req",
                "-new",
                "-key",
                str(key_path),
                "-out",
                str(output_csr_path),
                "-config",
                str(request_config_path),
            ]
        )

    async def run_self_sign(
        self,
        key_path: Path,
        output_cert_path: Path,
        request_config_path: Path,
        validity_days: int,
        extension_section: str,
    ) -> None:
        await self._openssl(
            [
                "req",
                "-x509",
                "-new",
                "-nodes",
                "-key",
                str(key_path),
                "-sha256",
                "-days",
                str(validity_days),
                "-out",
                str(output_cert_path),
                "-config",
                str(request_config_path),
                "-extensions",
                extension_section,
            ]
        )

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
        await self._openssl(
            [
                "x509",
                "-req",
                "-in",
                str(csr_path),
                "-CA",
                str(ca_cert_path),
                "-CAkey",
                str(ca_key_path),
                "-set_serial",
                f"0x{serial:X}",
                "-out",
                str(output_cert_path),
                "-days",
                str(validity_days),
                "-sha256",
                "-extfile",
                str(request_config_path),
                "-extensions",
                extension_section,
            ]
        )

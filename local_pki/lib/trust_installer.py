"""Root CA installation into operating system trust stores."""

import abc
import logging
import shlex
import sys
from pathlib import Path

from .crypto_tool import CryptoToolInvoker
from .errors import PkiError, TrustInstallError
from .models import TrustResult, TrustState

logger = logging.getLogger(__name__)

TRUSTED_MESSAGE = "Root CA certificate trusted successfully"

MACOS_LOGIN_KEYCHAIN = Path("Library") / "Keychains" / "login.keychain-db"
MACOS_SYSTEM_KEYCHAIN = "/Library/Keychains/System.keychain"


class TrustStrategy(abc.ABC):
    """Platform-specific trust-store installation."""

    platform_name = "unknown"
    automated = True

    def __init__(self, app_name: str) -> None:
        self.app_name = app_name

    @abc.abstractmethod
    def manual_instructions(self, ca_cert_path: Path) -> str:
        """Step-by-step instructions for trusting the CA by hand."""

    @abc.abstractmethod
    async def install(self, invoker: CryptoToolInvoker, ca_cert_path: Path, system_wide: bool) -> None:
        """Install the CA certificate; raise on any failure."""


class WindowsTrustStrategy(TrustStrategy):
    """Machine-wide Root store via certutil, elevated through a UAC prompt."""

    platform_name = "Windows"

    def elevated_command(self, ca_cert_path: Path) -> tuple[str, list[str]]:
        """Build the PowerShell invocation that runs certutil with RunAs elevation.

        A declined UAC prompt makes Start-Process throw, so PowerShell exits
        non-zero just like a certutil failure.
        """
        quoted_path = str(ca_cert_path).replace("'", "''")
        script = (
            "$p = Start-Process -FilePath certutil.exe "
            f"-ArgumentList '-addstore','-f','Root','\"{quoted_path}\"' "
            "-Verb RunAs -Wait -PassThru -WindowStyle Hidden; exit $p.ExitCode"
        )
        return "powershell.exe", ["-NoProfile", "-NonInteractive", "-Command", script]

    async def install(self, invoker: CryptoToolInvoker, ca_cert_path: Path, system_wide: bool) -> None:
        command, args = self.elevated_command(ca_cert_path)
        await invoker.run_trust_command(command, args)

    def manual_instructions(self, ca_cert_path: Path) -> str:
        return (
            f"To trust the {self.app_name} certificate manually:\n"
            f"1. Double-click: {ca_cert_path}\n"
            '2. Click "Install Certificate"\n'
            '3. Select "Current User" or "Local Machine"\n'
            '4. Choose "Place all certificates in the following store"\n'
            '5. Browse and select "Trusted Root Certification Authorities"\n'
            '6. Click "Finish"'
        )


class MacOSTrustStrategy(TrustStrategy):
    """Login keychain by default; System keychain through an administrator prompt."""

    platform_name = "macOS"

    def __init__(self, app_name: str, home: Path | None = None) -> None:
        super().__init__(app_name)
        self.home = home if home is not None else Path.home()

    def login_command(self, ca_cert_path: Path) -> tuple[str, list[str]]:
        keychain = self.home / MACOS_LOGIN_KEYCHAIN
        return "security", ["add-trusted-cert", "-r", "trustRoot", "-k", str(keychain), str(ca_cert_path)]

    def system_command(self, ca_cert_path: Path) -> tuple[str, list[str]]:
        shell_command = " ".join(
            [
                "security add-trusted-cert -d -r trustRoot -k",
                MACOS_SYSTEM_KEYCHAIN,
                shlex.quote(str(ca_cert_path)),
            ]
        )
        applescript_string = shell_command.replace("\\", "\\\\").replace('"', '\\"')
        script = f'do shell script "{applescript_string}" with administrator privileges'
        return "osascript", ["-e", script]

    async def install(self, invoker: CryptoToolInvoker, ca_cert_path: Path, system_wide: bool) -> None:
        if system_wide:
            command, args = self.system_command(ca_cert_path)
        else:
            command, args = self.login_command(ca_cert_path)
        await invoker.run_trust_command(command, args)

    def manual_instructions(self, ca_cert_path: Path) -> str:
        return (
            f"To trust the {self.app_name} certificate manually:\n"
            "1. Open Keychain Access\n"
            "2. File > Import Items\n"
            f"3. Select: {ca_cert_path}\n"
            "4. Double-click the imported certificate\n"
            '5. Expand "Trust" and set "When using this certificate" to "Always Trust"'
        )


class ManualTrustStrategy(TrustStrategy):
    """Platforms without an automated path (Linux and others)."""

    platform_name = "Linux"
    automated = False

    def __init__(self, app_name: str, platform_name: str = "Linux") -> None:
        super().__init__(app_name)
        self.platform_name = platform_name

    async def install(self, invoker: CryptoToolInvoker, ca_cert_path: Path, system_wide: bool) -> None:
        raise TrustInstallError(f"automatic trust installation is not supported on {self.platform_name}")

    def manual_instructions(self, ca_cert_path: Path) -> str:
        return (
            f"To trust the {self.app_name} certificate manually:\n"
            f"1. Locate the root certificate: {ca_cert_path}\n"
            "2. System store (Debian/Ubuntu):\n"
            f"   sudo cp {shlex.quote(str(ca_cert_path))} /usr/local/share/ca-certificates/devbox-root-ca.crt\n"
            "   sudo update-ca-certificates\n"
            "3. Browsers using NSS (Chrome, Firefox):\n"
            f'   certutil -d sql:$HOME/.pki/nssdb -A -t "C,," -n "{self.app_name} Root CA" '
            f"-i {shlex.quote(str(ca_cert_path))}\n"
            "4. Restart the browser"
        )


def select_trust_strategy(app_name: str, platform: str = sys.platform) -> TrustStrategy:
    """Pick the trust strategy for platform (a sys.platform value)."""
    if platform == "win32":
        return WindowsTrustStrategy(app_name)
    if platform == "darwin":
        return MacOSTrustStrategy(app_name)
    if platform.startswith("linux"):
        return ManualTrustStrategy(app_name)
    return ManualTrustStrategy(app_name, platform_name=platform)


class TrustInstaller:
    """Installs the root CA into the trust store, falling back to manual instructions.

    Failures never raise: they resolve to TrustResult(success=False) with
    instructions, since an untrusted CA still serves HTTPS (with a warning).
    """

    def __init__(
        self,
        invoker: CryptoToolInvoker,
        app_name: str,
        strategy: TrustStrategy | None = None,
    ) -> None:
        self.invoker = invoker
        self.strategy = strategy if strategy is not None else select_trust_strategy(app_name)
        self.state = TrustState.UNTRUSTED

    def get_manual_instructions(self, ca_cert_path: Path) -> str:
        return self.strategy.manual_instructions(ca_cert_path)

    async def install_root_trust(self, ca_cert_path: Path, system_wide: bool = False) -> TrustResult:
        """Add the CA certificate to the platform trust store.

        Args:
            ca_cert_path: Root CA certificate file
            system_wide: On macOS, target the System keychain (admin prompt)

        Returns:
            TrustResult; success=False always carries manual_instructions
        """
        manual = self.get_manual_instructions(ca_cert_path)
        if not self.strategy.automated:
            logger.info("No automated trust path on %s; manual steps required", self.strategy.platform_name)
            return TrustResult(
                success=False,
                message=f"Automatic trust installation is not available on {self.strategy.platform_name}",
                state=self.state,
                manual_instructions=manual,
            )

        self.state = TrustState.INSTALL_ATTEMPTED
        logger.info("Adding root CA to %s trust store", self.strategy.platform_name)
        try:
            if not ca_cert_path.is_file():
                raise TrustInstallError(f"root CA certificate not found: {ca_cert_path}")
            await self.strategy.install(self.invoker, ca_cert_path, system_wide)
        except (PkiError, OSError) as e:
            self.state = TrustState.INSTALL_FAILED
            logger.warning("Could not add root CA to trusted store: %s", e)
            logger.info("You may need to manually trust the certificate at: %s", ca_cert_path)
            return TrustResult(
                success=False,
                message="Could not automatically trust the root CA certificate",
                state=self.state,
                manual_instructions=manual,
                error=str(e),
            )

        self.state = TrustState.TRUSTED
        logger.info(TRUSTED_MESSAGE)
        return TrustResult(success=True, message=TRUSTED_MESSAGE, state=self.state)

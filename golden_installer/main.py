import argparse
import os
import time
from pathlib import Path

from golden_installer.__version__ import __version__
from golden_installer.config.settings import get_installer_settings
from golden_installer.domain import InstallContext
from golden_installer.installer.cmdline import KernelCommandLine
from golden_installer.installer.finalize import validate_hostname
from golden_installer.installer.media import check_preconditions
from golden_installer.installer.runner import run_install
from golden_installer.logging import EventLogger, LoggerFactory, setup_logging
from golden_installer.storage.exceptions import InstallerError
from golden_installer.ui import console


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser():
    parser = argparse.ArgumentParser(
        prog="golden-installer",
        description="Install the golden system image onto the largest local disk",
    )
    parser.add_argument(
        "--auto", action="store_true", help="Unattended mode: no confirmation, derived hostname"
    )
    parser.add_argument("--hostname", help="Hostname for the installed system")
    parser.add_argument("--image", help="Path to the compressed image (skips media search)")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log raw tool output as well")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    log = LoggerFactory.for_system()
    settings = get_installer_settings()
    console.show_banner(__version__, args.auto)

    try:
        if args.hostname:
            validate_hostname(args.hostname)
        installer_dir, image_path = check_preconditions(settings, args.image)
        ctx = InstallContext(
            settings=settings,
            image_path=image_path,
            installer_dir=installer_dir,
            auto=args.auto,
            hostname_override=args.hostname,
        )
        EventLogger.log_install_started(log, str(image_path), args.auto)
        run_install(ctx)
    except KeyboardInterrupt:
        log.error("Installation interrupted; the target disk may be left partially installed")
        return EXIT_INTERRUPTED
    except InstallerError as error:
        log.error(f"Installation failed: {error}")
        return EXIT_FAILURE
    return EXIT_OK


def autoinstall_main(argv=None):
    """Boot hook: start an unattended install when the kernel asks for one.

    The lock file lives in /tmp, so it allows exactly one run per boot.
    """
    argparse.ArgumentParser(
        prog="golden-autoinstall",
        description="Run golden-installer --auto when 'autoinstall' is on the kernel command line",
    ).parse_args(argv)
    setup_logging()
    log = LoggerFactory.for_system()
    settings = get_installer_settings()

    cmdline = KernelCommandLine.read()
    if cmdline.stock_installer_disabled(settings):
        log.info("Stock installer disabled on the kernel command line")
    if not cmdline.autoinstall(settings):
        log.info("Automatic installation not requested")
        return EXIT_OK

    try:
        fd = os.open(settings.autoinstall_lock, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        log.info(f"Automatic installation already started ({settings.autoinstall_lock} exists)")
        return EXIT_OK
    with os.fdopen(fd, "w") as lock_file:
        lock_file.write(f"{os.getpid()}\n")

    log.info(f"Starting automatic installation in {settings.autoinstall_delay_seconds:g} seconds")
    time.sleep(settings.autoinstall_delay_seconds)
    return main(["--auto"])


if __name__ == "__main__":
    raise SystemExit(main())

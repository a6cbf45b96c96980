import argparse
import sys
from pathlib import Path
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme
from rich_argparse import RichHelpFormatter
from signsmith.arguments import (
    add_credential_arguments,
    add_output_arguments,
    add_profile_arguments,
    add_storage_arguments,
)
from signsmith.logger import set_verbose
from signsmith.src.constants.cli_constants import (
    __version__,
    get_banner_text,
    APP_DESCRIPTION,
)


class SignsmithHelpFormatter(RichHelpFormatter):
    """Help formatter with the signsmith colour theme."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=30, width=100)
        self.console = Console(
            theme=Theme(
                {
                    "command": "bold cyan",
                    "argument": "green",
                    "option": "yellow",
                    "version": "blue",
                    "title": "bold magenta",
                }
            )
        )

    def start_section(self, heading):
        heading_text = Text(heading, style="title")
        super().start_section(str(heading_text))


def display_banner():
    """Display the signsmith banner."""
    console = Console()
    version_info = Text(f"v{__version__}", style="version")
    tagline = Text(APP_DESCRIPTION, style="italic")

    panel = Panel.fit(
        Text.assemble(get_banner_text(), "\n", tagline, "\n", version_info),
        border_style="green",
        padding=(1, 2),
    )
    console.print(panel)


def create_parser():
    parser = argparse.ArgumentParser(
        prog="signsmith",
        description=f"signsmith: {APP_DESCRIPTION}",
        formatter_class=SignsmithHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"signsmith {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show diagnostic output"
    )

    subparsers = parser.add_subparsers(dest="command")

    certificates_parser = subparsers.add_parser(
        "ensure-certificates",
        help="Make sure a distribution certificate is installed",
        formatter_class=SignsmithHelpFormatter,
        description="Restore the distribution certificate from encrypted storage, or create it when the team has none. On CI only restoring is allowed.",
    )
    add_credential_arguments(certificates_parser)
    add_storage_arguments(certificates_parser)
    add_output_arguments(certificates_parser)

    profile_parser = subparsers.add_parser(
        "ensure-profile",
        help="Make sure a valid provisioning profile is installed",
        formatter_class=SignsmithHelpFormatter,
        description="Find, clean up or create the provisioning profile of a bundle ID, install it and wire it into the Xcode project.",
    )
    add_credential_arguments(profile_parser)
    add_storage_arguments(profile_parser)
    add_profile_arguments(profile_parser)
    add_output_arguments(profile_parser)

    key_parser = subparsers.add_parser(
        "encryption-key",
        help="Copy the certificate encryption key",
        formatter_class=SignsmithHelpFormatter,
        description="Copy the certificate encryption key stored in the keychain, to share it with CI and teammates.",
    )
    key_parser.add_argument("--issuer-id", help="API key issuer ID [default: $APP_STORE_CONNECT_ISSUER_ID]")
    key_parser.add_argument("--keychain-name", help="Keychain holding the key [default: login]")
    key_parser.add_argument("--show", action="store_true", help="Print the key instead of copying it")

    patch_parser = subparsers.add_parser(
        "patch-project",
        help="Write signing settings into an Xcode project",
        formatter_class=SignsmithHelpFormatter,
        description="Re-apply a provisioning profile to the project file, e.g. after another tool regenerated it.",
    )
    patch_parser.add_argument("--from-json", type=Path, help="Result file written by ensure-profile --output-json")
    patch_parser.add_argument("--project-path", type=Path, help="Xcode project or workspace")
    patch_parser.add_argument("--project-root", type=Path, default=Path("."), help="Where to look for the project [default: current directory]")
    patch_parser.add_argument("--bundle-id", help="Bundle identifier of the target to update")
    patch_parser.add_argument("--team-id", help="Development team ID")
    patch_parser.add_argument("--profile-uuid", help="Provisioning profile UUID")
    patch_parser.add_argument("--code-sign-identity", help="Code signing identity, e.g. 'iPhone Distribution'")
    patch_parser.add_argument("--raw-only", action="store_true", help="Only run the line based patch [default: disabled]")

    coverage_parser = subparsers.add_parser(
        "check-coverage",
        help="Fail when code coverage is below a minimum",
        formatter_class=SignsmithHelpFormatter,
        description="Compute line coverage of selected targets and files from an xccov report.",
    )
    coverage_parser.add_argument("--config", type=Path, required=True, help="JSON file with targets, file_name_include and file_name_exclude")
    coverage_parser.add_argument("--report", type=Path, required=True, help="xccov JSON report or .xcresult bundle")
    coverage_parser.add_argument("--minimum", type=float, default=0, help="Minimum coverage percentage [default: 0]")

    return parser


def main():
    if len(sys.argv) == 1 or "-h" in sys.argv or "--help" in sys.argv:
        display_banner()

    load_dotenv()
    parser = create_parser()
    args = parser.parse_args()
    if args.verbose:
        set_verbose()

    if args.command == "ensure-certificates":
        from signsmith.commands.ensure_certificates import run_ensure_certificates_command

        return run_ensure_certificates_command(args)
    elif args.command == "ensure-profile":
        from signsmith.commands.ensure_profile import run_ensure_profile_command

        return run_ensure_profile_command(args)
    elif args.command == "encryption-key":
        from signsmith.commands.encryption_key import run_encryption_key_command

        return run_encryption_key_command(args)
    elif args.command == "patch-project":
        from signsmith.commands.patch_project import run_patch_project_command

        return run_patch_project_command(args)
    elif args.command == "check-coverage":
        from signsmith.commands.check_coverage import run_check_coverage_command

        return run_check_coverage_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

from pathlib import Path

PROFILE_TYPE_CHOICES = {
    "app-store": "IOS_APP_STORE",
    "ad-hoc": "IOS_APP_ADHOC",
    "development": "IOS_APP_DEVELOPMENT",
}


def add_credential_arguments(parser):
    """Add App Store Connect API key arguments to an existing parser."""
    group = parser.add_argument_group("App Store Connect API key")
    group.add_argument(
        "--key-id",
        help="API key ID [default: $APP_STORE_CONNECT_KEY_ID]",
    )
    group.add_argument(
        "--issuer-id",
        help="API key issuer ID [default: $APP_STORE_CONNECT_ISSUER_ID]",
    )
    group.add_argument(
        "--key-content",
        help="Contents of the .p8 key [default: $APP_STORE_CONNECT_KEY_CONTENT]",
    )
    group.add_argument(
        "--key-file",
        type=Path,
        help="Path to the .p8 key [default: $APP_STORE_CONNECT_KEY_FILE]",
    )


def add_storage_arguments(parser):
    """Add keychain and encrypted storage arguments to an existing parser."""
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path("."),
        help="Project checkout holding fastlane/certificates [default: current directory]",
    )
    parser.add_argument(
        "--certificate-name",
        help="Base name of the encrypted certificate files [default: distribution]",
    )
    parser.add_argument(
        "--encryption-key",
        help="Certificate encryption key [default: $CERTIFICATE_ENCRYPTION_KEY, then the keychain]",
    )
    parser.add_argument(
        "--keychain-name",
        help="Keychain to install certificates into [default: login]",
    )
    parser.add_argument(
        "--keychain-password",
        help="Keychain password, needed on CI to allow codesign access",
    )


def add_output_arguments(parser):
    parser.add_argument(
        "--output-json",
        type=Path,
        help="Write the result to this JSON file for later pipeline steps",
    )


def add_profile_arguments(parser):
    """Add provisioning profile arguments to an existing parser."""
    parser.add_argument(
        "--bundle-id", required=True, help="Bundle identifier of the app"
    )
    parser.add_argument(
        "--profile-type",
        choices=sorted(PROFILE_TYPE_CHOICES),
        default="app-store",
        help="Kind of provisioning profile [default: app-store]",
    )
    parser.add_argument(
        "--certificate-id",
        help="Certificate to put in the profile [default: best distribution certificate]",
    )
    parser.add_argument(
        "--profile-name",
        help="Name for a new profile [default: '<bundle id> App Store' and similar]",
    )
    parser.add_argument(
        "--project-path",
        type=Path,
        help="Xcode project or workspace to update [default: detected from the bundle id]",
    )
    parser.add_argument(
        "--profiles-dir",
        type=Path,
        help="Where profiles are installed [default: ~/Library/MobileDevice/Provisioning Profiles]",
    )
    parser.add_argument(
        "--skip-project-update",
        action="store_true",
        help="Only install the profile, leave the Xcode project alone [default: disabled]",
    )

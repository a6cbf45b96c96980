from rich.text import Text

__version__ = "0.1.0"

APP_DESCRIPTION = "Keep iOS signing certificates and provisioning profiles in shape, on your Mac and on CI"


def get_banner_text() -> Text:
    return Text("signsmith", style="bold green")

import os
import sys

# Variables set by the CI services we run on
CI_ENV_VARS = [
    "CI",
    "JENKINS_URL",
    "TRAVIS",
    "CIRCLECI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "BITRISE_IO",
    "BUILDKITE",
    "TF_BUILD",
    "TEAMCITY_VERSION",
    "XCS",
]


def is_ci() -> bool:
    """Return True when running unattended on a CI machine."""
    for name in CI_ENV_VARS:
        value = os.getenv(name)
        if value and value.lower() not in ("0", "false", "no"):
            return True
    return False


def is_mac() -> bool:
    return sys.platform == "darwin"

from setuptools import setup, find_namespace_packages

setup(
    name="signsmith",
    version="0.1.0",
    packages=find_namespace_packages(include=["signsmith", "signsmith.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "rich",
        "requests",
        "python-dotenv",
        "toml",
        "rich-argparse",
        "pynacl",
        "asn1crypto",
        "PyJWT>=2",
        "cryptography>=38",
        "PyYAML",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "signsmith=signsmith.cli:main",
        ],
    },
)

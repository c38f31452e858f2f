from setuptools import setup, find_packages


setup(
    name="zencore",
    version="1.0.0",
    packages=find_packages(include=["zencore", "zencore.*"]),
    description="Packages a directory into one compressed, checksummed, optionally encrypted archive and tracks its provenance.",
    author="Blues24",
    python_requires=">=3.11",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "argon2-cffi>=23.1.0",
        "zstandard>=0.22.0",
        "pyzipper>=0.3.6",
        "blake3>=0.4.1",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "zencore=zencore.cli:main",
        ]
    },
)

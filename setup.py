"""Packaging information for xfiles."""

import sys

import setuptools

from xfiles.constants import VERSION

if sys.version_info[:3] < (3, 8, 0):
    print("xfiles requires Python 3.8 to run.")
    sys.exit(1)

install_requires = [
    "aiosqlite>=0.17.0",
    "httpx>=0.23.0",
    "lz4>=3.0.2",
    "fasteners>=0.15",
    "semver>=2.9.1",
]

extras_require = {
    "dev": [
        "flake8>=3.7.9",
        "flake8-docstrings>=1.5.0",
        "flake8-import-order>=0.18.1",
        "black>=19.10b0",
        "mypy>=0.770",
        "pytest>=5.4.1",
        "pytest-asyncio>=0.17.0",
        "pytest-cov>=2.8.1",
    ]
}


def _long_description():
    with open("README.md") as f:
        return f.read()


setuptools.setup(
    name="xfiles",
    version=VERSION,
    description="Versioned file store on top of reply threads of a social network.",
    long_description=_long_description(),
    long_description_content_type="text/markdown",
    license="Apache",
    packages=setuptools.find_packages(),
    install_requires=install_requires,
    extras_require=extras_require,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Framework :: AsyncIO",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Topic :: System :: Filesystems",
    ],
    python_requires=">=3.8",
)

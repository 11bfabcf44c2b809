################################################################################
# VOL-DOCKA
#
# @file:        setup.py
# @module:      setup
# @description: Setuptools configuration and CLI packaging for Vol-Docka.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description (optional)
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

setup(
    name="vol-docka",
    version="1.0.0",
    description="Consistent backups of remote Docker volumes with safe container stop/restart",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Vol-Docka Contributors",
    author_email="",
    url="https://github.com/vol-docka/vol-docka",
    license="MIT",

    packages=find_packages(exclude=("tests*", "docs*", "examples*")),
    include_package_data=True,
    zip_safe=False,

    python_requires=">=3.10",

    install_requires=[
        "psutil>=5.9.0",
        "typer>=0.12.0",
        "rich>=13.0.0",
        "pydantic>=2.0.0",
        "jsonschema>=4.21.0",
    ],

    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
        ],
    },

    entry_points={
        "console_scripts": [
            "vol-docka=vol_docka.__main__:cli_main",
        ],
    },

    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Archiving :: Backup",
        "Topic :: System :: Systems Administration",
    ],

    keywords="docker backup volumes rsync ssh containers",
)

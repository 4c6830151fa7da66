# Copyright © 2025 Veriflare

import re
import os
import codecs
from os import path
from io import open
from setuptools import setup, find_packages


here = path.abspath(path.dirname(__file__))

with open(path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

with codecs.open(os.path.join(here, "veriflare/__init__.py"), encoding="utf-8") as init_file:
    version_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", init_file.read(), re.M)
    if not version_match:
        raise RuntimeError("Unable to find version string in veriflare/__init__.py")
    version_string = version_match.group(1)


requirements = [
    # HTTP and networking
    "requests>=2.31.0",
    "aiohttp>=3.9.5",

    # Flare chain access (registry, FdcHub, Relay) and ABI encoding
    "web3>=7.0.0",
    "eth-abi>=5.0.0",
    "eth-utils>=4.0.0",

    # Configuration
    "python-dotenv>=1.0.0",

    # Web framework (for gateway)
    "fastapi>=0.110.0",
    "uvicorn>=0.38.0",
    "pydantic>=2.0.0",
    "starlette>=0.30.0",
]

test_requirements = [
    "pytest>=7.4.0",
    "pytest-asyncio>=0.23.0",
    "httpx>=0.28.1",
]

setup(
    name="veriflare_attestor",
    version=version_string,
    description="Flare Data Connector Web2Json attestation gateway",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/veriflare/veriflare",
    author="Veriflare",
    license="MIT",
    packages=find_packages(include=['veriflare', 'veriflare.*', 'veriflare_canonical', 'veriflare_canonical.*']),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
    },
    entry_points={
        "console_scripts": [
            "veriflare-gateway=veriflare.main:main",
        ]
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: System :: Distributed Computing"
    ],
)

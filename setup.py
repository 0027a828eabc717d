"""
Iceberg Protocol Setup
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read() if f else ""

setup(
    name="iceberg-protocol",
    version="1.0.0",
    author="Iceberg Protocol Team",
    description="Iceberg privacy pool: commit, swap, withdraw with Groth16 proofs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["iceberg", "iceberg.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pycryptodome>=3.19.0",
        "httpx>=0.25.0",
        "aiohttp>=3.9.0",
        "aiosqlite>=0.19.0",
        "py_ecc>=6.0.0",
        "eth-abi>=4.2.0",
        "eth-account>=0.10.0",
        "eth-utils>=2.3.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-timeout>=2.2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "iceberg-node=iceberg.node.node:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security :: Cryptography",
    ],
    keywords="privacy zk-snark groth16 poseidon merkle swap",
)

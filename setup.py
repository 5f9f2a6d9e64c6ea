# setup.py
from setuptools import setup, find_packages

setup(
    name="quorum_wallet",
    version="0.1.0",
    packages=find_packages(),
    python_requires=">=3.9",
    install_requires=[
        "msgpack",            # state encoding
        "plyvel",             # LevelDB storage
        "cryptography",       # ECDSA keys and signatures
        "pycryptodome",       # keccak-256
        "psutil",             # monitoring
        "prometheus_client",  # metrics exporter
    ],
    extras_require={
        "test": ["pytest"],
    },
)

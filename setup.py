"""
Setup script for netsweep, a LAN device discovery and classification library.

Usage:
    pip install -e .            # library
    pip install -e ".[test]"    # with the test tools
"""
from setuptools import setup

PACKAGES = [
    # Our packages
    'config',
    'discovery',
    'discovery.detectors',
    'app',
    'storage',
]

INSTALL_REQUIRES = [
    'psutil>=5.9',      # interface enumeration for "auto" subnet detection
    'zeroconf>=0.131',  # mDNS service browsing
]

EXTRAS_REQUIRE = {
    'test': [
        'pytest>=7.0',
    ],
}

setup(
    name='netsweep',
    version='1.0.0',
    description='Discover devices on a local IPv4 network and classify their type',
    packages=PACKAGES,
    python_requires='>=3.9',
    install_requires=INSTALL_REQUIRES,
    extras_require=EXTRAS_REQUIRE,
)

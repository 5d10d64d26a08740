"""
HiveLink - asyncio MQTT 3.1.1 / 5.0 client

Setup script for installation via pip
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name='hivelink',
    version='1.0.0',
    author='mateuszsury',
    description='asyncio MQTT 3.1.1 and 5.0 client with QoS 0-2, auto-reconnect and TLS',
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=['tests', 'tests.*', 'examples']),
    python_requires='>=3.11',
    install_requires=[
        # Standard library only
    ],
    extras_require={
        'dev': [
            'pytest>=6.0',
            'pytest-asyncio>=0.18.0',
            'ruff>=0.1.0',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Topic :: System :: Networking',
        'Topic :: Communications',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
        'Programming Language :: Python :: Implementation :: CPython',
        'Operating System :: OS Independent',
        'Framework :: AsyncIO',
    ],
    keywords='mqtt mqtt5 client asyncio iot pubsub tls',
    license='Apache-2.0',
    platforms='any',
)

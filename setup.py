#!/usr/bin/env python3
"""
Setup script for the chatline terminal chat client
"""

from setuptools import setup, find_packages

setup(
    name="chatline",
    version="0.0.1",
    description="Real-time chat client: session authorization and WebSocket event dispatch",
    packages=find_packages(include=["chat", "chat.*", "common", "common.*"]),
    install_requires=[
        "websockets>=15.0",
        "aiohttp>=3.10.10",
        "typer>=0.12.3",
        "rich>=13.9.2",
        "aioconsole>=0.8.1",
        "PyYAML>=6.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'chatline=chat.cli:main',
        ],
    },
)

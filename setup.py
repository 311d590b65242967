"""
Setup script for Uptime Core
"""
from setuptools import setup, find_packages


setup(
    name="uptime-core",
    version="1.0.0",
    description="Service health monitoring and incident-management engine",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "aiohttp>=3.9",
        "PyYAML>=6.0",
        "rich>=13.0",
        "fastapi>=0.100",
        "pydantic>=2.0",
        "uvicorn>=0.23",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "uptime-core=uptime_core.cli:main",
        ],
    },
    zip_safe=False,
)

#!/usr/bin/env python
"""Setup configuration for Medilocker."""

from setuptools import find_packages, setup

setup(
    name="medilocker",
    version="0.1.0",
    description="Versioned patient records with consent-gated doctor access",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "boto3>=1.29.7",
        "celery>=5.3.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        "python-jose[cryptography]>=3.3.0",
        "redis>=5.0.1",
        "sqlalchemy>=2.0.23",
        "structlog>=23.2.0",
        "tenacity>=8.2.0",
    ],
    extras_require={
        "postgres": [
            "psycopg2-binary>=2.9.9",
        ],
        "test": [
            "pytest>=7.4.0",
        ],
    },
)

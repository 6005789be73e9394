"""
GTFS DB - Setup Configuration
"""

from setuptools import setup, find_packages
from pathlib import Path

# Ler README para long_description
this_directory = Path(__file__).parent
readme = this_directory / "README.md"
long_description = readme.read_text(encoding="utf-8") if readme.exists() else ""

setup(
    name="sptrans-gtfsdb",
    version="1.0.0",
    author="Rafael (rafarpl)",
    description="GTFS feed lifecycle in SQL namespaces: load, validate, snapshot, export, delete",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/rafarpl/sp-trans-pipeline",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        # Desenvolvimento
        "Development Status :: 4 - Beta",

        # Audience
        "Intended Audience :: Developers",

        # Tópicos
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",

        # License
        "License :: OSI Approved :: MIT License",

        # Python versions
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",

        # OS
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        # Core
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",

        # Databases
        "psycopg2-binary>=2.9.9",
        "sqlalchemy>=2.0.23",

        # Monitoring
        "prometheus-client>=0.19.0",
        "python-json-logger>=2.0.7",
    ],
    extras_require={
        "dev": [
            # Testing
            "pytest>=7.4.3",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.12.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "gtfsdb=gtfsdb.cli:main",
        ],
    },
    zip_safe=False,
    keywords=[
        "gtfs",
        "public-transport",
        "sptrans",
        "postgresql",
        "sqlalchemy",
    ],
)

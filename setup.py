"""Setup script for the Pokemon TCG catalog sync"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text() if readme_path.exists() else ""

setup(
    name="tcg-sync",
    version="1.0.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Rate-limited Pokemon TCG catalog and price sync into a local database",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/tcg-sync",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Games/Entertainment :: Board Games",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "aiohttp>=3.8.0",
        "certifi>=2023.7.22",
        "python-dotenv>=1.0.0",
        "SQLAlchemy>=2.0.0",
        "tqdm>=4.65.0",
        "tenacity>=8.2.0",
    ],
    extras_require={
        "tests": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "tcg-sync=tcg_sync.main:main",
        ],
    },
)

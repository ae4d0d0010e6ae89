"""
Setup script for pmi-prep.

pmi-prep is the behavioural core of a PMI exam-preparation platform:

1. Quiz Engine - Shuffled practice and timed exam sessions with scoring
2. Progress - Rolling accuracy and strong/weak knowledge areas per enrollment
3. Enrollment - Plans, unenrollment review, refunds and re-enrollment cooldowns

The 'pmiprep' command is a terminal front-end over the same library.
"""

from setuptools import find_packages, setup

setup(
    name="pmi-prep",
    version="1.0.0",
    description="PMI exam preparation core: quiz sessions, progress tracking and enrollment lifecycle",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        "requests>=2.28.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pmiprep=pmiprep.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Testing",
    ],
    keywords="pmi pmp capm exam-prep quiz education",
)

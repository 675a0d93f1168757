"""
Setup script for studyorbit.

StudyOrbit is the spaced-repetition scheduling core of a personal study
application. It provides three pieces:

1. Retention Model - decayed retention and next-review scheduling per item
2. Review Status - urgency buckets, mastery tiers and lesson aggregation
3. Session Engine - the question queue of one practice session

The 'studyorbit' command is a small terminal front end over JSON item files.
"""

from setuptools import find_packages, setup

setup(
    name="studyorbit",
    version="1.0.0",
    description="Spaced-repetition scheduling engine with a terminal front end",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="StudyOrbit",
    packages=find_packages(include=["studyorbit", "studyorbit.*"]),
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
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
            "studyorbit=studyorbit.cli.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition srs scheduling education",
)

"""
Setup script for logos-engine.

LOGOS is the adaptive learning optimization core for language learning:

1. Ability estimation - IRT (MLE / EAP) per linguistic component
2. Memory scheduling - FSRS with mastery stages
3. Prioritization - value / cost ranking of candidate objects
4. Diagnosis - cascading bottleneck detection
5. Collocations - PMI / NPMI / G2 over a token corpus

The 'logos' command exposes indexing and diagnostic tools.
"""

from setuptools import find_packages, setup

setup(
    name="logos-engine",
    version="1.0.0",
    description="Adaptive learning optimization engine for language learning",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["logos", "logos.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Numerics
        "numpy>=1.24.0",
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
            "logos=logos.cli.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition irt fsrs pmi language-learning",
)

"""
Setup script for learnchain.

learnchain reads the session logs written by AI coding assistants
(Codex CLI and Claude Code), extracts the concepts you worked through,
and quizzes you on them in the terminal.

The 'learnchain' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="learnchain",
    version="0.1.0",
    description="Turn AI coding-assistant sessions into terminal quizzes",
    packages=find_packages(include=["learnchain", "learnchain.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.2.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "learnchain=learnchain.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Software Development",
    ],
    keywords="learning quiz cli codex claude ai-assistant",
)

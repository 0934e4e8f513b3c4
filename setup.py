#!/usr/bin/env python3
"""
Setup script for the multi-engine benchmark harness.
"""
from setuptools import setup, find_packages

setup(
    name="multi-engine-benchmark",
    version="0.1.0",
    description="Run one analytical query catalog against several SQL engines and compare timings, plans and results",
    packages=find_packages(include=['multibench', 'multibench.*', 'examples', 'examples.*']),
    python_requires=">=3.8",
    install_requires=[
        "clickhouse-connect>=0.6.0",
        "psycopg[binary]>=3.1",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "multibench=examples.run_benchmark:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)

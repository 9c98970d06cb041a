"""Setup script for cloudsmith-oidc-publisher."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="cloudsmith-oidc-publisher",
    version="0.1.0",
    description="Publish Python packages to Cloudsmith from CI using OIDC federation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "PyYAML>=6.0",
        "requests>=2.31.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-mock>=3.10",
            "responses>=0.23.0",
            "PyJWT>=2.8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "publisher=publisher.cli:main",
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
    ],
)

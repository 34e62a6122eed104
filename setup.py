from setuptools import find_packages, setup

setup(
    name="scribe-processing",
    version="1.0.0",
    packages=find_packages(include=["scribe_processing", "scribe_processing.*"]),
    install_requires=[line for line in open("requirements-core.txt").read().splitlines() if line],
    extras_require={
        "test": ["pytest>=7.0", "pytest-asyncio>=0.21"],
    },
    python_requires=">=3.9",
)

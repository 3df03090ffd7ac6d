"""
Setup script for the Analysis Guard package.

This package provides the protective layer in front of the text
classification call: result cache, per-caller rate limiting and monthly
spend tracking on a shared DynamoDB store.
"""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="analysis-guard",
    version="1.0.0",
    author="Analysis Guard Team",
    description="Cache, rate limiting and budget tracking for guarded text analysis",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "lambda", "lambda.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=[
        # AWS SDK (DynamoDB, Bedrock Runtime, CloudWatch)
        "boto3>=1.34.0",
        "botocore>=1.34.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.0",
            "moto[dynamodb]>=5.0.0",
        ],
        "dev": [
            # Testing
            "pytest>=7.4.3",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.21.0",
            "moto[dynamodb]>=5.0.0",

            # Code quality
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.1",

            # Type stubs
            "boto3-stubs[dynamodb,bedrock-runtime,cloudwatch]>=1.34.0",
        ],
    },
    zip_safe=False,
)

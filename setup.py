# Project Setup Configuration

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="citadel-keychain",
    version="1.0.0",
    author="Citadel Keychain Team",
    description="Local password-derived encrypted keychain",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Security :: Cryptography",
        "License :: Other/Proprietary License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.109.0",
        "pydantic>=2.0",
        "uvicorn[standard]>=0.27.0",
        "cryptography>=42.0.0",
        "structlog>=24.1.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "httpx>=0.26.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "citadel-keychain=citadel_keychain.__main__:main",
        ],
    },
)

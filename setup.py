from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="mantle-privacy-toolkit",
    version="0.1.0",
    author="Hany Almnaem",
    author_email="",
    description="Stealth addresses and a shielded pool toolkit for Mantle (experimental)",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/Hany-Almnaem/mantle-privacy-toolkit",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Security :: Cryptography",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    python_requires=">=3.10",
    install_requires=[
        "petlib>=0.0.45",
        "trio>=0.27.0",
        "cbor2>=5.6.0",
        "click>=8.1.0",
        "pyyaml>=6.0",
        "pycryptodome>=3.20.0",
        "httpx>=0.27.0",
        "fastapi>=0.115.0",
        "uvicorn>=0.29.0",
        "websockets>=12.0",
    ],
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "pytest-trio>=0.8.0",
            "black>=24.0.0",
            "flake8>=7.0.0",
            "mypy>=1.8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mantle-privacy=mantle_privacy.cli:main",
        ],
    },
)

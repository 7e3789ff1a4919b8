from setuptools import setup, find_namespace_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="e2e-auth-bootstrap",
    version="1.0.0",
    author="volkb79-2",
    description="Pre-authenticates E2E test identities and persists their Playwright storage state",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["ui_tests"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=8.0", "pytest-asyncio>=0.23"],
    },
    entry_points={
        "console_scripts": [
            "e2e-auth-setup=ui_tests.auth_setup:main",
            "e2e-mock-auth-api=ui_tests.mock_auth_api:main",
        ],
    },
)

"""Club Subdomains - authenticated dashboard for requesting club DNS subdomains"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="club-subdomains",
    version="0.1.0",
    description="Authenticated dashboard for requesting and managing club DNS subdomains",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"club_subdomains": ["static/*"]},
    include_package_data=True,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Framework :: FastAPI",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn[standard]>=0.27.0",
        "httpx>=0.26.0",
        "sqlalchemy>=2.0.25",
        "python-dotenv>=1.0.0",
        "cryptography>=41.0.7",
        "pydantic>=2.5.3",
        "pydantic-settings>=2.1.0",
    ],
    extras_require={
        "dev": ["pytest>=7.4.0", "pytest-asyncio>=0.21.0", "black>=23.0.0", "ruff>=0.1.0"],
    },
    entry_points={
        "console_scripts": [
            "club-subdomains=club_subdomains.cli:main",
        ],
    },
)

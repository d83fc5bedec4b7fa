from setuptools import setup, find_packages

setup(
    name="mapsync",
    version="1.0.0",
    description="mapsync - Bookmarks, tours and master/slave sync for map widgets",
    packages=find_packages(include=["mapsync", "mapsync.*"]),
    include_package_data=True,
    install_requires=[
        # Core data modeling and validation
        "pydantic>=2.0.0",

        # Environment variables
        "python-dotenv>=1.0.0",

        # Sync snapshot tables
        "duckdb>=0.9.0",

        # CLI and rich output
        "typer>=0.9.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mapsync = mapsync.cli:app",
        ],
    },
    python_requires=">=3.11",
    package_dir={"": "."},
)

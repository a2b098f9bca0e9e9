from setuptools import find_packages, setup

setup(
    name="bulkload",
    version="0.3.0",
    description="Bulk insert, ignore, replace and upsert of records into SQLite",
    packages=find_packages(include=["bulkload", "bulkload.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "rich>=13.0",
        "SQLAlchemy>=2.0",
        "Jinja2>=3.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "bulkload=bulkload.cli.main:main",
        ],
    },
)

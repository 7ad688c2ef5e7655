from setuptools import find_packages, setup

setup(
    name="bikeshare-ride-core",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "migrations", "migrations.*"]),
    package_dir={"": "."},
    python_requires=">=3.10",
    install_requires=[
        "sqlalchemy>=2.0.0",
        "loguru>=0.7.0",
        "python-dotenv>=1.0.0",
        "alembic>=1.12.0",
        "psycopg2-binary>=2.9.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "requests>=2.31.0",
        "urllib3>=2.0.0",
        "pybreaker>=1.0.0",
        "prometheus-client>=0.19.0",
        "prometheus-fastapi-instrumentator>=6.1.0",
        "tzdata>=2024.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.25.0",
        ],
    },
)

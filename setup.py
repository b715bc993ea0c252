from setuptools import setup, find_packages

setup(
    name="bankbot-router",
    version="0.1.0",
    packages=find_packages(include=["bankbot", "bankbot.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "starlette",
        "pydantic>=2",
        "pydantic-settings>=2.7",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)

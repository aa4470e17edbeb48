import setuptools
from setuptools import find_packages

with open("readme.md", "r") as fh:
    long_description = fh.read()


vars2find = ["__author__", "__version__"]
vars2readme = {}
with open("./ledger_vault/__init__.py") as f:
    for line in f.readlines():
        for v in vars2find:
            if line.startswith(v):
                line = line.replace(" ", "").replace('"', "").replace("'", "").strip()
                vars2readme[v] = line.split("=", 1)[1]

core_deps = [
    "httpx>=0.25.0",
    "tenacity",
    "pydantic>=2.0",
    "redis[hiredis]>=5.0.1",
]

setuptools.setup(
    name="ledger-vault",
    version=vars2readme["__version__"],
    author=vars2readme["__author__"],
    description="Cloud backup, restore and storage credential lifecycle for a small-business ledger",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=core_deps,
    extras_require={
        "api": [
            "fastapi>=0.100.0",
            "pydantic-settings>=2.0",
            "python-dotenv",
            "uvicorn",
        ],
        "test": [
            "pytest",
            "pytest-asyncio",
            "fastapi>=0.100.0",
            "pydantic-settings>=2.0",
            "python-dotenv",
        ],
        "all": [
            "fastapi>=0.100.0",
            "pydantic-settings>=2.0",
            "python-dotenv",
            "uvicorn",
        ],
    },
)

import setuptools
from setuptools import find_packages

with open("readme.md", "r") as fh:
    long_description = fh.read()


vars2find = ["__author__", "__version__"]
vars2readme = {}
with open("./media_vault/__init__.py") as f:
    for line in f.readlines():
        for v in vars2find:
            if line.startswith(v):
                line = line.replace(" ", "").replace('"', "").replace("'", "").strip()
                vars2readme[v] = line.split("=")[1]

core_deps = [
    "aioboto3",
    "botocore",
    "pydantic>=2.0",
    "click>=8.0",
    "python-dotenv",
]

setuptools.setup(
    name="media-vault",
    version=vars2readme["__version__"],
    author=vars2readme["__author__"],
    description="Back up, restore and publish S3 media buckets",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["media_vault", "media_vault.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=core_deps,
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "media-vault=media_vault.cli:main",
        ],
    },
)

"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://registry.openblock.cc"
KEYWORDS = "embedded arduino toolchain mirror registry board-manager package-index"
HERE = os.path.dirname(os.path.abspath(__file__))


def read_version() -> str:
    with open(os.path.join(HERE, "src", "toolmirror", "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"')
    raise RuntimeError("Unable to find __version__")


if __name__ == "__main__":
    setup(
        name="toolmirror",
        version=read_version(),
        description="Mirror board-support toolchains into a self-hosted registry",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.9",
        package_dir={"": "src"},
        packages=find_packages("src"),
        install_requires=[
            "requests",
            "urllib3",
            "tqdm",
            "minio",
        ],
        extras_require={
            "test": ["pytest"],
        },
        entry_points={
            "console_scripts": [
                "toolmirror=toolmirror.cli:main",
            ],
        },
        include_package_data=True)

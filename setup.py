from setuptools import find_packages, setup
from pathlib import Path


def read_readme() -> str:
    readme = Path(__file__).parent / "README.md"
    return readme.read_text(encoding="utf-8") if readme.exists() else ""


setup(
    name="slurm-meadow",
    version="1.0.0",
    description="Slurm adapter for workflow engines: job-array submission, queue status polling and sacct resource accounting.",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    author="slurm-meadow contributors",
    python_requires=">=3.9",
    license="MIT",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=["psutil"],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "slurm-meadow=slurm_meadow.cli:main",
        ]
    },
)

from setuptools import setup, find_packages

setup(
    name="logsieve",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#")
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    author="Billy & Team",
    description="Rare and anomalous log line detection with isolation forests and TF-IDF",
    python_requires=">=3.9",
)

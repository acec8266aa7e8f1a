from setuptools import setup, find_packages

setup(
    name="gamesim",
    version="0.1.0",
    packages=find_packages(include=["gamesim", "gamesim.*"]),
    install_requires=[
        "numpy",
        "torch",
        "scipy",
        "tqdm",
        "tabulate",
        "nest_asyncio"
    ],
    extras_require={
        "test": [
            "pytest",
            "hypothesis"
        ],
    },
)

from setuptools import setup, find_packages

setup(
    name="friend-finder",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pyserial",
        "pycryptodome",
        "pynmea2",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "friendfinder=friendfinder.main:main",
        ],
    },
    python_requires=">=3.8",
)

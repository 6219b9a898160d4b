from setuptools import setup, find_packages

setup(
    name="pump_monitor",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.31.0",
        "paho-mqtt>=2.0.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": ["pump-monitor=main:main"],
    },
    python_requires=">=3.10",
)

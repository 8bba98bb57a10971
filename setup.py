from setuptools import setup, find_packages

setup(
    name="bond_analytics",
    version="0.1.0",
    description="Bond analytics engine: cash flows, yield solving, risk metrics and spreads",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "pandas",
    ],
    extras_require={
        "test": [
            "pytest",
            "scipy",
        ],
    },
    python_requires=">=3.8",
)

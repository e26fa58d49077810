import os
from codecs import open
from setuptools import setup, find_packages


here = os.path.abspath(os.path.dirname(__file__))


# Get the long description from the README file
with open(os.path.join(here, "README.rst"), encoding="utf-8") as f:
    long_description = f.read()


setup(
    name="chaindeploy",
    version="0.1.0",
    description="deploy compiled contracts and record their addresses per chain",
    long_description=long_description,
    license="MIT",
    # See https://pypi.python.org/pypi?%3Aaction=list_classifiers
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
    ],
    keywords="ethereum deploy contracts",
    packages=find_packages(exclude=["contrib", "docs", "tests"]),
    install_requires=[
        "web3>=7.0,<8",
        "eth-account>=0.13",
        "eth-abi>=5.0",
        "eth-utils>=4.0",
        "rlp>=4.0",
        "attrs",
        "click>=7.0",
    ],
    extras_require={"test": ["pytest", "web3[tester]>=7.0,<8"]},
    python_requires=">=3.8",
    # To provide executable scripts, use entry points in preference to the
    # "scripts" keyword. Entry points provide cross-platform support and allow
    # pip to create the appropriate form of executable for the target platform.
    entry_points="""
    [console_scripts]
    chain-deploy=chaindeploy.cli:cli
    """,
)

import re

from setuptools import find_packages, setup

version = re.search('^__version__\\s*=\\s*"(.*)"', open("messenger/clientutils/__init__.py").read(), re.M).group(1)

setup(
    name="messenger-client-utils",
    version=version,
    author="The messenger-client-utils Authors",
    description="Utilities for messaging clients: coarse background scheduling, configuration, logging and metrics",
    packages=["messenger.{}".format(p) for p in find_packages("messenger")],
    install_requires=["prometheus-client", "arrow", "pyyaml", "pydantic>=2", "pyhumps", "typing-extensions"],
    extras_require={"tests": ["pytest"]},
    python_requires=">=3.10",
)

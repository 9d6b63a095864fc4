#!/usr/bin/env python

from setuptools import find_packages, setup

from restvfs._version import __version__

version = __version__


try:
    with open("README.md", encoding="utf-8") as fp:
        readme = fp.read()
except OSError:
    readme = "(Readme file not found.)"

# Cheroot is the preferred server for the stand-alone mode
# (`restvfs.server.server_cli`). We do not add it as an installation
# requirement, because
#   1. users may not need the command line server at all
#   2. users may mount RestVFSApp in another server or framework

install_requires = ["json5", "PyYAML"]
tests_require = ["pytest", "WebTest"]

setup(
    name="RestVFS",
    version=version,
    author="Martin Wendt",
    maintainer="Martin Wendt",
    description="Publish a virtual file system over HTTP, based on WSGI",
    long_description=readme,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
        "Topic :: Internet :: WWW/HTTP :: WSGI",
        "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="web wsgi rest vfs filesystem application server",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=install_requires,
    python_requires=">=3.8",
    py_modules=[],
    zip_safe=False,
    extras_require={
        "server": ["cheroot"],
        "test": tests_require,
    },
    entry_points={"console_scripts": ["restvfs = restvfs.server.server_cli:run"]},
)

#!/usr/bin/env python3
"""
dotstrap - bootstrap a machine from a dotfiles repository
"""

from setuptools import setup, find_packages
import os

# Read the README file
current_dir = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(current_dir, "README.md"), "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Read requirements
with open(os.path.join(current_dir, "requirements.txt"), "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="dotstrap",
    version="1.6.0",
    author="Danish Abdullah",
    description="Bootstrap a machine from a dotfiles repository",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/danishabdullah/dotfiles",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: MacOS",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: System :: Installation/Setup",
        "Topic :: Utilities",
    ],
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=22.0.0",
            "flake8>=5.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dotstrap=dotstrap.cli:main",
            "dots=dotstrap.cli:main",
        ],
    },
    project_urls={
        "Bug Reports": "https://github.com/danishabdullah/dotfiles/issues",
        "Source": "https://github.com/danishabdullah/dotfiles",
    },
    keywords="dotfiles bootstrap rsync homebrew apt nerd-fonts",
    zip_safe=False,
)

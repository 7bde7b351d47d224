"""
tidesync - offline-first record synchronization engine
"""

from setuptools import setup, find_packages

setup(
    name="tidesync",
    use_scm_version={"fallback_version": "0.1.0"},
    setup_requires=["setuptools_scm"],
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    description="Offline-first sync engine: pending-change queue, push/pull, Last-Write-Wins",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    license="MIT",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    install_requires=[
        "requests>=2.28.0",
        "click>=8.0.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "tidesync=tidesync.cli:main",
        ],
    },
)

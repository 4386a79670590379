"""
Setup script for the embedding propagation package.
"""

from setuptools import setup, find_packages

setup(
    name="embedprop",
    version="1.0.0",
    description="Embedding propagation: unsupervised feature and node embeddings for graphs",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"config": ["*.yaml"]},
    python_requires=">=3.8",
    install_requires=[
        "torch>=2.0.0",
        "torch-geometric>=2.4.0",
        "networkx>=3.0",
        "numpy>=1.23.0",
        "pyyaml>=6.0",
        "scikit-learn>=1.2.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.3.0",
            "matplotlib>=3.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "embedprop-train=scripts.train:main",
        ],
    },
)

from setuptools import setup, find_packages

setup(
    name="mdl_graph",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "scipy",
        "scikit-learn",
        "pandas",
        "numba"
    ],
    extras_require={
        "test": ["pytest"],
    },
    author="Connor Frankston",
    description="Community detection by minimum description length on multigraphs",
    python_requires=">=3.9",
)

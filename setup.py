from setuptools import setup, find_packages

setup(
    name="calcorr",
    version="0.1.0",
    description="Flat field and relative response correction stage for reduced astronomical frames",
    author="Jacob Isbell",
    author_email="jwisbell@arizona.edu",
    packages=find_packages(exclude=["tests", "docs"]),
    py_modules=["calcorr", "calcorr_correct"],
    install_requires=[
        "astropy",
        "scipy",
        "pandas",
        "polars",
        "numpy",
        "matplotlib",
    ],
    extras_require={"test": ["pytest"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    entry_points={},
)

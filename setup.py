from setuptools import setup

setup(
    name="moment_inversion",
    version="0.1.0",
    packages=["moment_inversion", "moment_inversion.scripts"],
    python_requires=">=3.11",
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "typer",
        "matplotlib",
    ],
    extras_require={
        "test": ["pytest", "hypothesis"],
    },
    entry_points={
        "console_scripts": [
            "invert-moment-tensor=moment_inversion.scripts.invert_moment_tensor:main",
        ],
    },
    include_package_data=True,
)

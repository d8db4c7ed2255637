from setuptools import setup, find_namespace_packages

setup(
    name="playsync",
    version="0.1.0",
    description="Shared play/pause/position sync for media players over pub/sub",
    author="mseibert",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["core*", "playback*", "transport*"]),
    py_modules=["main", "config"],
    python_requires=">=3.10",
    install_requires=[
        "python-osc>=1.8.0",
        "PyYAML>=6.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "playsync=main:main",
        ],
    },
)

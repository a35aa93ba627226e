from setuptools import setup, find_packages

setup(
    name="formatd",
    version="0.1.0",
    description="Formatting daemon that keeps formatter config and libraries warm between CLI runs",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "typer>=0.12.0",
        "rich>=13.0.0",
        "python-dotenv>=1.0.0",
        "jsbeautifier>=1.15.0",
        "esprima>=4.0.1",
        "black>=24.1.0",
        "EditorConfig>=0.12.4",
        "pathspec>=0.12.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "formatd=formatd.main:formatd",
        ],
    },
    python_requires=">=3.11",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)

from setuptools import setup, find_packages

setup(
    name="http-stream-writer",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "h11>=0.14",
        "httpx>=0.27",
        "pydantic>=2.5",
        "structlog>=23.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "starlette>=0.37",
            "python-multipart>=0.0.13",
        ],
    },
    description="Stream an unbounded byte source into one field of a multipart/form-data POST.",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
)

from setuptools import setup, find_packages
import os

# Read the contents of README file
this_directory = os.path.abspath(os.path.dirname(__file__))
try:
    with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
        long_description = f.read()
except FileNotFoundError:
    long_description = "ffbatch - batch FFmpeg transcoding with VMAF scoring and target-quality CRF search"

setup(
    name="ffbatch",
    version="1.0.0",
    description="Batch FFmpeg transcoding with VMAF scoring and target-quality CRF search",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["ffbatch", "ffbatch.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Video :: Conversion",
    ],
    python_requires=">=3.9",
    install_requires=[
        "tqdm>=4.0.0",
    ],
    extras_require={
        "dev": [
            "pytest",
            "black",
            "flake8",
        ],
    },
    entry_points={
        "console_scripts": [
            "ffbatch=ffbatch.cli:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)

from setuptools import setup, find_packages

setup(
    name="ssoprofilegen",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "boto3>=1.26.0",
        "botocore>=1.29.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    scripts=["scripts/generate_profiles.py"],
    python_requires=">=3.8",
    description="Generate AWS CLI profiles for every role reachable through AWS SSO",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)

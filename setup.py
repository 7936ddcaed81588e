"""Install the Vaanshika auth client package."""

from setuptools import setup, find_packages

setup(
    name='vaanshika-auth',
    version='0.1.0',
    packages=find_packages(exclude=['*tests*']),
    install_requires=[
        "httpx",
        "pyjwt",
        "redis",
        "retry",
        "pytz",
        "python-dateutil",
        "pydantic>=2",
        "python-json-logger",
        "wtforms",
        "email-validator"
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "pytest-mock",
            "hypothesis",
            "fakeredis"
        ]
    },
    zip_safe=False
)

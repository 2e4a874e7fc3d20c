"""Install the Redis session store package."""

from setuptools import setup, find_packages

setup(
    name='redistore',
    version='0.1.0',
    description='Redis-backed sessions bound to signed cookies',
    packages=find_packages(exclude=['*test*']),
    python_requires='>=3.8',
    install_requires=[
        "cryptography",
        "flask",
        "pyjwt>=2",
        "python-dateutil",
        "python-json-logger",
        "pytz",
        "redis>=4.1",
    ],
    extras_require={
        'test': [
            "fakeredis>=2",
            "pytest",
        ],
    },
    zip_safe=False
)

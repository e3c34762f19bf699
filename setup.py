"""
setup.py for tabqueue
"""

from setuptools import setup, find_packages

setup(
    name="tabqueue",
    version="0.1.0",
    description="Rate-limited bulk tab import queue",
    packages=find_packages(include=['tabqueue', 'tabqueue.*']),
    package_data={
        'tabqueue.config': ['default_config.yaml']
    },
    python_requires='>=3.10',
    install_requires=[
        'click',
        'pydantic>=2',
        'pyyaml',
        'sqlalchemy>=1.4'
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio'
        ]
    },
    entry_points={
        'console_scripts': [
            'tabqueue=tabqueue.cli:cli'
        ]
    }
)

from setuptools import setup, find_packages

setup(
    name="fxevo",
    version="0.1.0",
    packages=find_packages(include=["fxevo", "fxevo.*"]),
    install_requires=[
        # System
        'python-dotenv',
        'psutil>=5.9.0',

        # Data Handling
        'numpy',
        'pandas',
    ],
    extras_require={
        'test': [
            'pytest>=7.0.0',
            'pytest-cov>=4.0.0',
            'pytest-mock>=3.10.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'fxevo = fxevo.cli.fxevo:main',
        ],
    },
    include_package_data=True,
    description="Evolutionary currency trading backtester",
    author="Grant Morgan",
    author_email="grant.t.morgan@gmail.com",
    url="https://github.com/grant-tm/EVO",
)

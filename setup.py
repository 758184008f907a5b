from setuptools import setup, find_packages

setup(
    name='amplugins',
    version='0.1.0',
    description='Analysis manager step plugins: MSGF spectral probability scoring and DTA_Refinery.',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    install_requires=[
        'pandas',
        'pydantic',
        'pyyaml',
        'click',
        'platformdirs',
        'pyteomics',
        'psutil',
        'sqlalchemy',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        "console_scripts": [
            # 'amplugins' command will call the main() group in amplugins/cli.py
            "amplugins = amplugins.cli:main",
        ],
    },
    classifiers=[
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.10',
)

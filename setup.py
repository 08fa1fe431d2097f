from setuptools import setup, find_packages

setup(
    name='habsdm',
    version='0.1.0',
    description='Habitat suitability modelling from GBIF occurrences and WorldClim layers',
    packages=find_packages(include=['habsdm', 'habsdm.*']),
    python_requires='>=3.11',
    install_requires=[
        'numpy',
        'pandas',
        'geopandas>=1.0',
        'shapely>=2.0',
        'pyarrow',
        'xarray',
        'rioxarray',
        'rasterio',
        'affine',
        'scikit-learn',
        'elapid',
        'statsmodels',
        'pygbif',
        'pydantic>=2',
        'pyyaml',
        'pyhere',
        'typer',
        'typing_extensions',
        'tqdm',
        'matplotlib',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'habsdm=habsdm.cli:app',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
)

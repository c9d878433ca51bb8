from setuptools import setup, find_packages


setup(
    name='torch_kronmult',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*', 'examples', 'benchmarks']),
    install_requires=[
        'torch>=1.8.0',
    ],
    extras_require={
        'scipy': ['numpy', 'scipy'],
        'test': ['pytest', 'numpy', 'scipy'],
    }
)

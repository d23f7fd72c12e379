from setuptools import setup, find_packages


def get_dependencies():
    return [
        'numpy',
        'scipy',
        'astropy',
        'pyerfa',
        'sgp4>=2.7',
    ]


setup(
    name='ssaprop',
    version='0.1.0',
    description='Spacecraft state propagation with configurable force models and maneuvers',
    packages=find_packages(exclude=['tests', 'tests.*']),
    license='MIT',
    zip_safe=False,
    include_package_data=True,
    python_requires='>=3.8',
    install_requires=get_dependencies(),
    extras_require={
        'test': ['pytest'],
    },
)

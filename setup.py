from setuptools import setup, find_packages
import os
from glob import glob

package_name = 'glider_planner'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    data_files=[
        (os.path.join('share', package_name, 'config'), glob('config/*.yaml')),
    ],
    install_requires=[
        'setuptools',
        'numpy',
        'scipy',
        'pyyaml',
    ],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=True,
    author='Glider Planner Team',
    author_email='glider@example.com',
    description='Trapezoidal-collocation trajectory generation for a flat-plate perching glider',
    license='MIT',
    python_requires='>=3.8',
    tests_require=['pytest'],
    entry_points={
        'console_scripts': [],
    },
)

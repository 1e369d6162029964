#!/usr/bin/env python

"""Hadoop DSL: job workflows compiled to Azkaban flows."""

from hadoopdsl import __version__
from setuptools import find_packages, setup


def _get_long_description():
  """Get README contents."""
  with open('README.md') as reader:
    return reader.read()

setup(
  name='hadoopdsl',
  version=__version__,
  description=__doc__,
  long_description=_get_long_description(),
  long_description_content_type='text/markdown',
  license='MIT',
  packages=find_packages(exclude=['test', 'test.*']),
  python_requires='>=3.7',
  classifiers=[
    'Development Status :: 4 - Beta',
    'Intended Audience :: Developers',
    'License :: OSI Approved :: MIT License',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
  ],
  install_requires=[
    'docopt',
    'PyYAML>=5.1',
    'requests>=2.4.0',
    'urllib3>=1.26',
  ],
  extras_require={
    'test': ['pytest'],
  },
  entry_points={'console_scripts': [
    'hadoopdsl = hadoopdsl.__main__:main',
  ]},
)

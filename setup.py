#!/usr/bin/env python
"""Setuptools distribution file."""
import os
from setuptools import setup


def _get_here(fname):
    return os.path.join(os.path.dirname(__file__), fname)


def _get_long_description(fname, encoding='utf8'):
    return open(fname, 'r', encoding=encoding).read()


setup(name='roomchat',
      version='0.1.0',
      license='ISC',
      description="Python 3 asyncio multi-room chat server and client",
      long_description=_get_long_description(fname=_get_here('README.rst')),
      packages=['roomchat'],
      package_data={'': ['README.rst'], },
      python_requires='>=3.10',
      extras_require={
          'test': ['pytest', 'pytest-asyncio'],
      },
      entry_points={
         'console_scripts': [
             'roomchat-server = roomchat.server:main',
             'roomchat-client = roomchat.client:main'
         ]},
      platforms='any',
      zip_safe=True,
      keywords=', '.join(('chat', 'server', 'client', 'rooms', 'talker',
                          'json', 'api', 'library', 'asyncio')),
      classifiers=['License :: OSI Approved :: ISC License (ISCL)',
                   'Programming Language :: Python :: 3',
                   'Intended Audience :: Developers',
                   'Development Status :: 4 - Beta',
                   'Topic :: Communications :: Chat',
                   'Topic :: Internet',
                   ],
      )

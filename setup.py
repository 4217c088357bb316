#!/usr/bin/env python3
import sys

from setuptools import setup

from branchkeeper import __version__ as VERSION

if sys.version_info < (3, 7):
    sys.exit('Python 3.7 is required to run branchkeeper')

setup(
    name='branchkeeper',
    version=VERSION,
    license='GPL-3',
    packages=[
        'branchkeeper',
        'branchkeeper.migrations',
        'branchkeeper.util',
        'branchkeeper.util.steam',
    ],
    scripts=['bin/branchkeeper'],
    zip_safe=False,
    install_requires=[
        'PyGObject',
    ],
    extras_require={
        'test': ['pytest'],
    },
    description='Keep parallel installs of Steam game branches in sync',
    long_description="""branchkeeper keeps a managed copy of each branch of a Steam
    game (main, beta, alternate, alternate beta) next to the Steam install, tracks
    the build id each copy was made from and tells which copies are out of date.""",
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
        'Programming Language :: Python',
        'Operating System :: POSIX :: Linux',
        'Topic :: Games/Entertainment'
    ],
)

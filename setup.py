#!/usr/bin/env python
# -*- coding: utf-8 -*-

import os
import re
from setuptools import setup


def strip_comments(line):
    return line.split('#')[0]


def file_path(*parts):
    CUR_DIR = os.path.dirname(os.path.abspath(__file__))
    return os.path.join(CUR_DIR, *parts)


desc = 'Selenium end-to-end tests for the Anytime Mailbox location lookup and login pages'

with open(file_path('mailbox_e2e/VERSION')) as f:
    version = ''.join(map(strip_comments, f.readlines())).strip()
    version = re.sub('^v', '', version)

with open(file_path('README.md')) as f:
    long_description = f.read()

setup(
    name='mailbox-e2e',
    version=version,
    packages=['mailbox_e2e'],
    package_data={"mailbox_e2e": ['templates/report.html', 'VERSION']},
    license='Apache Software License 2.0',
    description=desc,
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires='>=3.8',
    install_requires=[
        'pytest>=7.0',
        'jinja2',
        'selenium>=4.10',
        'pydantic>=2',
        'pydantic-settings',
        'webdriver-manager',
    ],
    classifiers=[
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
        'Framework :: Pytest',
        'License :: OSI Approved :: Apache Software License',
    ],
    entry_points={
        'pytest11': [
            'mailbox-e2e = mailbox_e2e.plugin',
        ],
    },
)

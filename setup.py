#!/usr/bin/env python

# Copyright 2014-2017 OpenMarket Ltd
# Copyright 2017 Vector Creations Ltd
# Copyright 2017-2018 New Vector Ltd
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import os
from setuptools import setup, find_packages, Command


here = os.path.abspath(os.path.dirname(__file__))


# We stick with what appears to be the convention among Twisted projects, and
# don't attempt to do anything when someone runs `setup.py test`; instead we
# direct people to run `trial` directly.
class TestCommand(Command):
    user_options = []

    def initialize_options(self):
        pass

    def finalize_options(self):
        pass

    def run(self):
        print("""roommember's tests cannot be run via setup.py. To run them, try:
     PYTHONPATH="." trial tests
""")


def read_file(path_segments):
    """Read a file from the package. Takes a list of strings to join to
    make the path"""
    file_path = os.path.join(here, *path_segments)
    with open(file_path) as f:
        return f.read()


def exec_file(path_segments):
    """Execute a single python file to get the variables defined in it"""
    result = {}
    code = read_file(path_segments)
    exec(code, result)
    return result


version = exec_file(("roommember", "__init__.py"))["__version__"]
dependencies = exec_file(("roommember", "python_dependencies.py"))
long_description = read_file(("README.rst",))

REQUIREMENTS = dependencies["REQUIREMENTS"]
CONDITIONAL_REQUIREMENTS = dependencies["CONDITIONAL_REQUIREMENTS"]
ALL_OPTIONAL_REQUIREMENTS = dependencies["ALL_OPTIONAL_REQUIREMENTS"]
TEST_REQUIREMENTS = dependencies["TEST_REQUIREMENTS"]

# Make `pip install roommember[all]` install all the optional dependencies.
CONDITIONAL_REQUIREMENTS["all"] = list(ALL_OPTIONAL_REQUIREMENTS)

# Make `pip install roommember[test]` pull in what `trial tests` needs.
CONDITIONAL_REQUIREMENTS["test"] = list(TEST_REQUIREMENTS)


setup(
    name="roommember",
    version=version,
    packages=find_packages(exclude=["tests", "tests.*"]),
    description="Room membership authorization with durable, versioned records",
    install_requires=REQUIREMENTS,
    extras_require=CONDITIONAL_REQUIREMENTS,
    include_package_data=True,
    package_data={"roommember": ["storage/schema/*.sql", "storage/schema/*/*/*.sql*"]},
    zip_safe=False,
    long_description=long_description,
    python_requires="~=3.8",
    entry_points={
        "console_scripts": [
            "roommember_admin = roommember.app.admin_cmd:main",
        ],
    },
    cmdclass={"test": TestCommand},
)

# Copyright 2015, 2016 OpenMarket Ltd
# Copyright 2017 Vector Creations Ltd
# Copyright 2018 New Vector Ltd
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

import itertools

# This file is exec'd by setup.py, so it must not import anything outside the
# standard library.
#
# REQUIREMENTS is a simple list of requirement specifiers[1], and must be
# installed. It is passed to setup() as install_requires in setup.py.
#
# CONDITIONAL_REQUIREMENTS is the optional dependencies, represented as a dict
# of lists. The dict key is the optional dependency name and can be passed to
# pip when installing. It is passed to setup() as extras_require in setup.py.
#
# [1] https://pip.pypa.io/en/stable/reference/pip_install/#requirement-specifiers.

REQUIREMENTS = [
    "jsonschema>=3.0.0",
    "frozendict>=1",
    # Twisted 18.9 introduces some logger improvements that the structured
    # logger utilises
    "Twisted>=18.9.0",
    "zope.interface>=4.4.2",
    "pyyaml>=3.11",
    "prometheus_client>=0.4.0",
    "attrs>=19.2.0,!=21.1.0",
    "typing-extensions>=3.10.0",
    "packaging>=16.1",
    "netaddr>=0.7.18",
]

CONDITIONAL_REQUIREMENTS = {
    "postgres": [
        # we use the serializable isolation level constants, which psycopg 2.8 has.
        "psycopg2>=2.8",
    ],
}

ALL_OPTIONAL_REQUIREMENTS = set()  # type: set

for name, optional_deps in CONDITIONAL_REQUIREMENTS.items():
    ALL_OPTIONAL_REQUIREMENTS = set(optional_deps) | ALL_OPTIONAL_REQUIREMENTS

# ensure there are no double-quote characters in any of the deps (otherwise the
# 'pip install' incantation in DependencyException will break)
for dep in itertools.chain(
    REQUIREMENTS,
    *CONDITIONAL_REQUIREMENTS.values(),
):
    if '"' in dep:
        raise Exception(
            "Dependency `%s` contains double-quote; use single-quotes instead" % (dep,)
        )

# Test-only dependencies. These are not checked at runtime.
TEST_REQUIREMENTS = ["parameterized>=0.7.0"]


def list_requirements():
    return list(set(REQUIREMENTS) | ALL_OPTIONAL_REQUIREMENTS)


if __name__ == "__main__":
    import sys

    sys.stdout.writelines(req + "\n" for req in list_requirements())

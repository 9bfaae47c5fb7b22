#  Copyright 2022 The Matrix.org Foundation C.I.C.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
#

"""
This module exposes a single function which checks the dependencies listed in
`roommember.python_dependencies` are present and correctly versioned, using
`importlib.metadata` to look up what is installed.
"""

import logging
from importlib import metadata
from typing import Iterable, List, NamedTuple, Optional

from packaging.requirements import Requirement

from roommember import __version__ as VERSION
from roommember.python_dependencies import CONDITIONAL_REQUIREMENTS, REQUIREMENTS

__all__ = ["check_requirements"]


class DependencyException(Exception):
    @property
    def message(self) -> str:
        return "\n".join(
            [
                "Missing Requirements: %s" % (", ".join(self.dependencies),),
                "To install run:",
                "    pip install --upgrade --force %s" % (" ".join(self.dependencies),),
                "",
            ]
        )

    @property
    def dependencies(self) -> Iterable[str]:
        for i in self.args[0]:
            yield '"' + i + '"'


class Dependency(NamedTuple):
    requirement: Requirement
    must_be_installed: bool


def _generic_dependencies() -> Iterable[Dependency]:
    """Yield pairs (requirement, must_be_installed)."""
    for raw_requirement in REQUIREMENTS:
        yield Dependency(Requirement(raw_requirement), True)
    for raw_requirements in CONDITIONAL_REQUIREMENTS.values():
        for raw_requirement in raw_requirements:
            yield Dependency(Requirement(raw_requirement), False)


def _dependencies_for_extra(extra: str) -> Iterable[Dependency]:
    for raw_requirement in CONDITIONAL_REQUIREMENTS[extra]:
        yield Dependency(Requirement(raw_requirement), True)


def _not_installed(requirement: Requirement, extra: Optional[str] = None) -> str:
    if extra:
        return (
            f"roommember {VERSION} needs {requirement.name} for {extra}, "
            f"but it is not installed"
        )
    else:
        return f"roommember {VERSION} needs {requirement.name}, but it is not installed"


def _incorrect_version(
    requirement: Requirement, got: str, extra: Optional[str] = None
) -> str:
    if extra:
        return (
            f"roommember {VERSION} needs {requirement} for {extra}, "
            f"but got {requirement.name}=={got}"
        )
    else:
        return (
            f"roommember {VERSION} needs {requirement}, "
            f"but got {requirement.name}=={got}"
        )


def check_requirements(extra: Optional[str] = None) -> None:
    """Check roommember's dependencies are present and correctly versioned.

    If provided, `extra` must be the name of a packaging extra (e.g. "postgres"
    in `pip install matrix-roommember[postgres]`).

    If `extra` is None, this function checks that
    - all mandatory dependencies are installed and correctly versioned, and
    - each optional dependency that's installed is correctly versioned.

    If `extra` is not None, this function checks that
    - the dependencies needed for that extra are installed and correctly versioned.

    :raises DependencyException: if a dependency is missing or incorrectly versioned.
    :raises ValueError: if this extra does not exist.
    """
    if extra is None:
        dependencies = _generic_dependencies()
    elif extra in CONDITIONAL_REQUIREMENTS:
        dependencies = _dependencies_for_extra(extra)
    else:
        raise ValueError(f"roommember {VERSION} does not provide the feature '{extra}'")

    deps_unfulfilled: List[str] = []
    errors: List[str] = []

    for (requirement, must_be_installed) in dependencies:
        if requirement.marker is not None and not requirement.marker.evaluate(
            {"extra": extra or ""}
        ):
            continue

        try:
            dist = metadata.distribution(requirement.name)
        except metadata.PackageNotFoundError:
            if must_be_installed:
                deps_unfulfilled.append(requirement.name)
                errors.append(_not_installed(requirement, extra))
        else:
            # We specify prereleases=True to allow prereleases such as RCs.
            if not requirement.specifier.contains(dist.version, prereleases=True):
                deps_unfulfilled.append(requirement.name)
                errors.append(_incorrect_version(requirement, dist.version, extra))

    if deps_unfulfilled:
        for err in errors:
            logging.error(err)

        raise DependencyException(deps_unfulfilled)

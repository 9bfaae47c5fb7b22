# Copyright 2019 Matrix.org Foundation C.I.C.
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
import shutil
import tempfile
import unittest
from typing import Any

import yaml

from roommember.config.homeserver import HomeServerConfig


class ConfigFileTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.dir = tempfile.mkdtemp()
        self.config_file = os.path.join(self.dir, "homeserver.yaml")

    def tearDown(self) -> None:
        shutil.rmtree(self.dir)

    def generate_config(self) -> None:
        config = HomeServerConfig().generate_config(
            config_dir_path=self.dir,
            data_dir_path=self.dir,
            server_name="lemurs.win",
        )
        with open(self.config_file, "w") as f:
            f.write(config)

    def generate_config_and_remove_lines_containing(self, needle: str) -> None:
        self.generate_config()

        with open(self.config_file) as f:
            contents = f.readlines()
        contents = [line for line in contents if needle not in line]
        with open(self.config_file, "w") as f:
            f.write("".join(contents))

    def update_config(self, **changes: Any) -> None:
        """Replace top-level settings in the generated config file."""
        with open(self.config_file) as f:
            config = yaml.safe_load(f)
        config.update(changes)
        with open(self.config_file, "w") as f:
            yaml.safe_dump(config, f)

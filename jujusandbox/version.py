# Copyright 2025 Canonical Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Version of the juju-sandbox project.

A release build replaces this module with one holding a fixed string (see
setup.py). In a git checkout the version is derived from ``git describe``.
"""

import subprocess
from pathlib import Path

__all__ = ('version',)

_FALLBACK = '0.1'  # this gets bumped after release


def _pep440(describe: str) -> str:
    """Turn ``<tag>-<#commits>-g<hex>[-dirty]`` into ``<tag>+<#commits>.g<hex>[.dirty]``."""
    if '-' not in describe:
        return describe
    public, local = describe.split('-', 1)
    return public + '+' + local.replace('-', '.')


def _get_version() -> str:
    checkout = Path(__file__).parent
    if not (checkout.parent / '.git').exists():
        return _FALLBACK + '.dev0+unknown'
    try:
        proc = subprocess.run(
            ['git', 'describe', '--tags', '--dirty'],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            cwd=checkout,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        # No git, or no tags yet.
        return _FALLBACK + '.dev0+unknown'
    return _pep440(proc.stdout.strip().decode('utf8'))


version = _get_version()

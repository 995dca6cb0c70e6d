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

"""Logging setup and structured security events for the sandbox."""

from __future__ import annotations

import datetime
import enum
import json
import logging
import typing

TRACE: typing.Final[int] = 5
"""The TRACE log level, which is lower than DEBUG."""


def setup_logging(debug: bool = False):
    """Set up Python logging for a sandbox session.

    The root logger is set to DEBUG, and the TRACE level is registered so that
    security events have a readable level name.

    Args:
        debug: if True, write logs to stderr.
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logging.addLevelName(TRACE, 'TRACE')

    if debug:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s %(levelname)-8s %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)


class _SecurityEventAuthN(enum.Enum):
    """Security event names for authentication events.

    See https://cheatsheetseries.owasp.org/cheatsheets/Logging_Vocabulary_Cheat_Sheet.html
    """

    AUTHN_LOGIN_SUCCESS = 'authn_login_success'
    AUTHN_LOGIN_FAIL = 'authn_login_fail'


class _SecurityEventAuthZ(enum.Enum):
    """Security event names for authorization events.

    See https://cheatsheetseries.owasp.org/cheatsheets/Logging_Vocabulary_Cheat_Sheet.html
    """

    AUTHZ_FAIL = 'authz_fail'
    AUTHZ_CHANGE = 'authz_change'


class _SecurityEventInput(enum.Enum):
    """Security event names for input events.

    See https://cheatsheetseries.owasp.org/cheatsheets/Logging_Vocabulary_Cheat_Sheet.html
    """

    INPUT_VALIDATION_FAIL = 'input_validation_fail'


_SecurityEvent = typing.Union[
    _SecurityEventAuthN,
    _SecurityEventAuthZ,
    _SecurityEventInput,
]


def _log_security_event(
    # These are the OWASP log levels, which are not the same as the Python log levels.
    level: typing.Literal['INFO', 'WARN', 'CRITICAL'],
    event_type: _SecurityEvent | str,
    event: str,
    *,
    description: str,
    app_id: str = 'unknown',
):
    """Log a structured security event.

    Args:
        level: log level of the security event (this is not the same as the Python log level)
        event_type: the event type, in the format described by OWASP
          https://cheatsheetseries.owasp.org/cheatsheets/Logging_Vocabulary
        event: the name of the event, in the format described by OWASP
        description: a free-form description of the event, meant for human
          consumption.
        app_id: identifies the simulated model the event happened in.
    """
    logger = logging.getLogger(__name__)
    type = event_type if isinstance(event_type, str) else event_type.value
    data: dict[str, typing.Any] = {
        'datetime': datetime.datetime.now(datetime.timezone.utc).isoformat(),
        'level': level,
        'type': 'security',
        'appid': app_id,
        'event': f'{type}:{event}',
        'description': description,
    }
    logger.log(TRACE, '%s', json.dumps(data))

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

"""Request and reply envelopes of the controller RPC protocol, and their JSON form.

A request looks like::

    {"Type": "Client", "Request": "ServiceExpose",
     "Params": {"ServiceName": "wordpress"}, "RequestId": 42}

and is answered by exactly one of::

    {"RequestId": 42, "Response": {}}
    {"RequestId": 42, "Error": "\"wordpress\" is an invalid service name."}
"""

from __future__ import annotations

import copy
import dataclasses
import json
from collections.abc import Mapping
from typing import Any, Union

RawPayload = Union[str, bytes, Mapping[str, Any]]


class Error(Exception):
    """Base class of the errors raised by the sandbox protocol layers."""

    def __repr__(self):
        return f'<{type(self).__module__}.{type(self).__name__} {self.args}>'


class ProtocolError(Error):
    """Raised when a payload isn't a well-formed envelope."""


def _load(data: RawPayload) -> dict[str, Any]:
    if isinstance(data, (str, bytes)):
        try:
            obj = json.loads(data)
        except ValueError as e:
            raise ProtocolError(f'cannot decode envelope: {e}') from e
    else:
        # Never hand the caller's own objects to a handler.
        obj = copy.deepcopy(data)
    if not isinstance(obj, dict):
        raise ProtocolError(f'envelope should be an object, not {type(obj).__name__}')
    return obj


@dataclasses.dataclass(frozen=True)
class Request:
    """A decoded request envelope."""

    type: str
    request: str
    params: dict[str, Any] = dataclasses.field(default_factory=dict)
    request_id: Any = None
    """Caller-chosen correlation id, echoed on the reply; ``None`` if absent."""

    @property
    def key(self) -> tuple[str, str]:
        return (self.type, self.request)

    @classmethod
    def from_json(cls, data: RawPayload) -> Request:
        """Decode a request from JSON text or an already-decoded mapping.

        Raises:
            ProtocolError: if the payload isn't a valid request envelope.
        """
        obj = _load(data)
        for field in ('Type', 'Request'):
            if not isinstance(obj.get(field), str):
                raise ProtocolError(f'envelope {field} should be a string')
        params = obj.get('Params')
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ProtocolError(f'envelope Params should be an object, not {type(params).__name__}')
        return cls(obj['Type'], obj['Request'], params, obj.get('RequestId'))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {'Type': self.type, 'Request': self.request, 'Params': self.params}
        if self.request_id is not None:
            d['RequestId'] = self.request_id
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclasses.dataclass(frozen=True)
class Reply:
    """A reply envelope: a response on success, or an error message, never both."""

    request_id: Any = None
    response: dict[str, Any] | None = None
    error: str | None = None

    def __post_init__(self):
        if (self.response is None) == (self.error is None):
            raise ValueError('a reply needs exactly one of response or error')

    @classmethod
    def success(cls, request_id: Any, response: dict[str, Any] | None = None) -> Reply:
        return cls(request_id, response=response if response is not None else {})

    @classmethod
    def failure(cls, request_id: Any, message: str) -> Reply:
        return cls(request_id, error=message)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_json(cls, data: RawPayload) -> Reply:
        """Decode a reply from JSON text or an already-decoded mapping.

        Raises:
            ProtocolError: if the payload isn't a valid reply envelope.
        """
        obj = _load(data)
        error = obj.get('Error')
        response = obj.get('Response')
        if error is not None and not isinstance(error, str):
            raise ProtocolError('reply Error should be a string')
        if response is not None and not isinstance(response, dict):
            raise ProtocolError('reply Response should be an object')
        try:
            return cls(obj.get('RequestId'), response=response, error=error)
        except ValueError as e:
            raise ProtocolError(str(e)) from e

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.request_id is not None:
            d['RequestId'] = self.request_id
        if self.error is not None:
            d['Error'] = self.error
        else:
            d['Response'] = self.response
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

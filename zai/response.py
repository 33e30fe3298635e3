# -*- coding: utf-8 -*-

# Z.ai SDK Core
# Copyright (C) 2025 zai-sdk-core contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Response wrapper returned by the API client.
"""

from typing import Any

import httpx

from zai.config import REQUEST_ID_HEADERS


def get_request_id(headers: httpx.Headers) -> str:
    """Server request id from X-Request-ID or Request-ID, empty when absent."""
    for name in REQUEST_ID_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return ""


class APIResponse:
    """
    An HTTP response plus request metadata.

    Attributes:
        http_response: Underlying httpx.Response
        elapsed: Seconds from sending the first attempt to receiving headers
        request_id: Server request id, empty when absent
    """

    def __init__(self, http_response: httpx.Response, elapsed: float):
        self.http_response = http_response
        self.elapsed = elapsed
        self.request_id = get_request_id(http_response.headers)

    @property
    def status_code(self) -> int:
        return self.http_response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.http_response.headers

    @property
    def method(self) -> str:
        return self.http_response.request.method

    @property
    def url(self) -> httpx.URL:
        return self.http_response.request.url

    @property
    def http_version(self) -> str:
        return self.http_response.http_version

    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    def is_error(self) -> bool:
        return self.status_code >= 400

    def read(self) -> bytes:
        """Read the whole body and release the connection."""
        try:
            return self.http_response.read()
        finally:
            self.http_response.close()

    @property
    def text(self) -> str:
        self.read()
        return self.http_response.text

    def json(self) -> Any:
        self.read()
        return self.http_response.json()

    def close(self) -> None:
        """Release the body. Safe to call more than once."""
        self.http_response.close()

    def __enter__(self) -> "APIResponse":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<APIResponse [{self.status_code}] {self.method} {self.url}>"

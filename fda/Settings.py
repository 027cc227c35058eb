#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# File Download Agent - Authenticated download gateway
# Copyright (C) 2025-2026 File Download Agent contributors
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

from dataclasses import dataclass, field

DEFAULT_HOST = ''
DEFAULT_PORT = 18080
DEFAULT_DIRECTORY_NAME = 'files'

DOWNLOAD_ROUTE = '/download'

# Transfer chunk size (256 KiB), the single copy buffer used for every download
TRANSFER_CHUNK_SIZE = int(os.getenv('FDA_TRANSFER_CHUNK_SIZE', 256 * 1024))

# Upstream request timeouts (in seconds)
UPSTREAM_CONNECT_TIMEOUT = int(os.getenv('FDA_CONNECT_TIMEOUT', 30))
UPSTREAM_READ_TIMEOUT = int(os.getenv('FDA_READ_TIMEOUT', 600))

MAX_REDIRECTS = 20

# Headers allowed to travel from the caller to the upstream server
REQUEST_HEADER_ALLOW_LIST = (
    'Range',
    'If-Range',
    'If-Match',
    'If-None-Match',
    'If-Modified-Since',
    'If-Unmodified-Since',
    'Authorization',
    'Cookie',
    'User-Agent',
    'Accept',
    'Accept-Language',
)

# Headers allowed to travel from the upstream server back to the caller
RESPONSE_HEADER_ALLOW_LIST = (
    'Content-Type',
    'Content-Length',
    'Content-Range',
    'Content-Encoding',
    'Accept-Ranges',
    'Last-Modified',
    'ETag',
    'Cache-Control',
    'Expires',
    'Set-Cookie',
)


@dataclass(frozen=True)
class Argon2Parameters:
    """Argon2id cost parameters shared by every envelope.

    They are not stored in the envelope, so changing any of them invalidates
    every token issued before the change.
    """
    timeCost: int = 2
    memoryCostKiB: int = 8 * 1024
    parallelism: int = 2
    keyLength: int = 32


DEFAULT_ARGON2_PARAMETERS = Argon2Parameters()


class HeaderAllowList:
    """Immutable, case-insensitive set of header names allowed across one direction"""

    __slots__ = ('names', '_lowered')

    def __init__(self, names):
        object.__setattr__(self, 'names', tuple(names))
        object.__setattr__(self, '_lowered', frozenset(name.lower() for name in self.names))

    def __setattr__(self, name, value):
        raise AttributeError(f'{type(self).__name__} is read-only')

    def __contains__(self, name):
        return name.lower() in self._lowered

    def __iter__(self):
        return iter(self.names)

    def __len__(self):
        return len(self.names)

    def pick(self, headers):
        """
        Collect the allowed headers from a header container.

        Works with email.message.Message (incoming requests), urllib3's
        HTTPHeaderDict (upstream responses) and plain dicts, keeping repeated
        headers such as Set-Cookie as separate entries.

        Returns:
            list: (name, value) tuples in allow-list order
        """
        getAll = getattr(headers, 'getlist', None) or getattr(headers, 'get_all', None)
        if getAll is None:
            # Plain mapping, one value per name
            lowered = {key.lower(): value for key, value in headers.items()}
            getAll = lambda name: [lowered[name.lower()]] if name.lower() in lowered else []

        picked = []
        for name in self.names:
            for value in getAll(name) or ():
                picked.append((name, value))
        return picked


@dataclass(frozen=True)
class ProxyConfig:
    requestHeaders: HeaderAllowList = field(default_factory=lambda: HeaderAllowList(REQUEST_HEADER_ALLOW_LIST))
    responseHeaders: HeaderAllowList = field(default_factory=lambda: HeaderAllowList(RESPONSE_HEADER_ALLOW_LIST))
    chunkSize: int = TRANSFER_CHUNK_SIZE
    connectTimeout: float = UPSTREAM_CONNECT_TIMEOUT
    readTimeout: float = UPSTREAM_READ_TIMEOUT
    maxRedirects: int = MAX_REDIRECTS


@dataclass(frozen=True)
class GatewayConfig:
    """Everything a download request may read. Built once at startup, never mutated."""
    signKey: str
    directory: str
    proxyConfig: ProxyConfig = field(default_factory=ProxyConfig)
    argon2Parameters: Argon2Parameters = DEFAULT_ARGON2_PARAMETERS

    def __post_init__(self):
        object.__setattr__(self, 'directory', os.path.abspath(self.directory))

    @property
    def isOpenMode(self):
        return not self.signKey

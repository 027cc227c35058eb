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

import http.cookiejar
import re

from email.utils import formatdate, parsedate_to_datetime
from http import HTTPStatus

import requests
import urllib3

from fda.Errors import InternalError, TransferAborted, UpstreamError
from fda.Kernel import getLogger
from fda.Settings import ProxyConfig

DEFAULT_CONTENT_TYPE = 'application/octet-stream'

BYTE_RANGE_PATTERN = re.compile(r'^bytes=(\d*)-(\d*)$')

logger = getLogger(__name__)


class PreparedTransfer:
    """Status line, headers and body source of a download, ready to be sent"""

    def __init__(self, statusCode, headers, reader=None, remaining=None, onClose=None):
        self.statusCode = statusCode
        self.headers = headers
        self._reader = reader
        self._remaining = remaining
        self._onClose = onClose

    def hasHeader(self, name):
        name = name.lower()
        return any(key.lower() == name for key, value in self.headers)

    def read(self, size):
        if self._reader is None:
            return b''

        if self._remaining is not None:
            if self._remaining <= 0:
                return b''
            size = min(size, self._remaining)

        data = self._reader(size)
        if self._remaining is not None:
            self._remaining -= len(data)
        return data

    def close(self):
        if self._onClose is not None:
            onClose, self._onClose = self._onClose, None
            onClose()


def parseByteRange(byteRange, size):
    """
    Parse a single 'bytes=' range against a file size.

    Returns:
        tuple: (start, end) inclusive, None when the header should be ignored,
        or False when the range cannot be satisfied
    """
    reg = BYTE_RANGE_PATTERN.match(byteRange.strip())
    if not reg:
        return None

    startText, endText = reg.groups()
    if not startText and not endText:
        return None

    if not startText:
        # Suffix range: the last N bytes
        length = int(endText)
        if length == 0:
            return False
        return max(size - length, 0), size - 1

    start = int(startText)
    end = int(endText) if endText else size - 1
    if start >= size:
        return False
    if end < start:
        return None

    return start, min(end, size - 1)


class StreamProxy:
    """
    Fetches the bytes of a download, either from a local file or an upstream
    HTTP server, and copies them to the caller.

    One instance serves every request concurrently. Its configuration is fixed
    at construction; build a new instance to change it.
    """

    def __init__(self, config=None):
        self.config = config or ProxyConfig()

        self.session = requests.Session()
        self.session.max_redirects = self.config.maxRedirects
        # Cookies cross the gateway only as allow-listed headers, never through a shared jar
        self.session.cookies.set_policy(http.cookiejar.DefaultCookiePolicy(allowed_domains=[]))
        # Bytes are relayed untouched, so ask upstream not to compress them
        self.session.headers['Accept-Encoding'] = 'identity'

    def close(self):
        self.session.close()

    # Remote branch
    def openRemote(self, url, requestHeaders):
        """
        Issue the upstream GET with only the allowed caller headers.

        Raises:
            UpstreamError: too many redirects, network failure or non-2xx status
        """
        headers = dict(self.config.requestHeaders.pick(requestHeaders))

        try:
            response = self.session.get(
                url,
                headers=headers,
                stream=True,
                allow_redirects=True,
                timeout=(self.config.connectTimeout, self.config.readTimeout),
            )
        except requests.TooManyRedirects as e:
            logger.error(f'Too many redirects (> {self.config.maxRedirects}): {url}')
            raise UpstreamError('Too many redirects') from e
        except requests.RequestException as e:
            logger.error(f'Failed to send request to {url}: {e}')
            raise UpstreamError('Failed to send request') from e

        status = response.status_code
        forwarded = self.config.responseHeaders.pick(response.raw.headers)

        if status == HTTPStatus.NOT_MODIFIED:
            # Conditional headers were forwarded, so a 304 is a valid answer
            response.close()
            return PreparedTransfer(status, [(k, v) for k, v in forwarded if k.lower() != 'content-length'])

        if status < 200 or status >= 300:
            reason = response.reason or ''
            response.close()
            logger.warning(f'Upstream answered {status} {reason}: {url}')
            raise UpstreamError(f'Request failed: {status} {reason}'.strip(), statusCode=status)

        if not any(name.lower() == 'content-type' for name, value in forwarded):
            forwarded.append(('Content-Type', DEFAULT_CONTENT_TYPE))

        def readUpstream(size):
            return response.raw.read(size, decode_content=False)

        return PreparedTransfer(status, forwarded, reader=readUpstream, onClose=response.close)

    # Local branch
    def openLocal(self, path, fileStat, requestHeaders):
        """
        Prepare a local file, answering validators and a single byte range.

        Raises:
            InternalError: the file could not be opened after it was resolved
        """
        size = fileStat.st_size
        mtime = int(fileStat.st_mtime)
        lastModified = formatdate(mtime, usegmt=True)
        etag = f'"{mtime:x}-{size:x}"'

        headers = [
            ('Content-Type', DEFAULT_CONTENT_TYPE),
            ('Last-Modified', lastModified),
            ('ETag', etag),
            ('Accept-Ranges', 'bytes'),
        ]

        if self._isNotModified(requestHeaders, etag, mtime):
            return PreparedTransfer(HTTPStatus.NOT_MODIFIED, headers[1:])

        byteRange = None
        if requestHeaders.get('Range') and self._ifRangeMatches(requestHeaders.get('If-Range'), etag, lastModified):
            byteRange = parseByteRange(requestHeaders.get('Range'), size)

        if byteRange is False:
            return PreparedTransfer(
                HTTPStatus.REQUESTED_RANGE_NOT_SATISFIABLE,
                [('Content-Range', f'bytes */{size}'), ('Content-Length', '0')],
            )

        try:
            f = open(path, 'rb')
        except OSError as e:
            logger.error(f'Unable to open {path}: {e}')
            raise InternalError('Unable to open file') from e

        if byteRange:
            start, end = byteRange
            try:
                f.seek(start)
            except OSError as e:
                f.close()
                raise InternalError('Unable to open file') from e

            headers.append(('Content-Range', f'bytes {start}-{end}/{size}'))
            headers.append(('Content-Length', str(end - start + 1)))
            return PreparedTransfer(
                HTTPStatus.PARTIAL_CONTENT, headers, reader=f.read, remaining=end - start + 1, onClose=f.close
            )

        headers.append(('Content-Length', str(size)))
        return PreparedTransfer(HTTPStatus.OK, headers, reader=f.read, remaining=size, onClose=f.close)

    def _isNotModified(self, requestHeaders, etag, mtime):
        ifNoneMatch = requestHeaders.get('If-None-Match')
        if ifNoneMatch:
            tags = [tag.strip() for tag in ifNoneMatch.split(',')]
            return '*' in tags or etag in tags or f'W/{etag}' in tags

        ifModifiedSince = requestHeaders.get('If-Modified-Since')
        if ifModifiedSince:
            try:
                since = parsedate_to_datetime(ifModifiedSince)
            except (TypeError, ValueError, IndexError):
                return False
            return since is not None and mtime <= since.timestamp()

        return False

    def _ifRangeMatches(self, ifRange, etag, lastModified):
        if not ifRange:
            return True
        return ifRange.strip() in (etag, lastModified)

    # Copy
    def copyTo(self, transfer, writer):
        """
        Copy the transfer body to writer through one fixed-size buffer.

        Nothing is retried: the first read or write error ends the transfer.

        Returns:
            int: bytes written

        Raises:
            TransferAborted: I/O failed part way, carries the bytes already written
        """
        written = 0
        try:
            while True:
                data = transfer.read(self.config.chunkSize)
                if not data:
                    break

                writer.write(data)
                written += len(data)

            flush = getattr(writer, 'flush', None)
            if flush:
                flush()
        except (OSError, requests.RequestException, urllib3.exceptions.HTTPError) as e:
            raise TransferAborted(written, e) from e
        finally:
            transfer.close()

        return written

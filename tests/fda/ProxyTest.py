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

import io
import json
import os
import tempfile
import unittest

from email.message import Message
from email.utils import formatdate

from urllib3 import HTTPHeaderDict

from fda.Errors import InternalError, TransferAborted, UpstreamError
from fda.Proxy import DEFAULT_CONTENT_TYPE, PreparedTransfer, StreamProxy, parseByteRange
from fda.Settings import HeaderAllowList, ProxyConfig

from tests.GatewayTestBase import UPSTREAM_PAYLOAD, GatewayTestBase, generateRandomFile


class FailingWriter:
    """Accepts a number of writes, then behaves like a closed socket"""

    def __init__(self, allowedWrites):
        self.allowedWrites = allowedWrites
        self.written = 0

    def write(self, data):
        if self.allowedWrites <= 0:
            raise BrokenPipeError('client went away')
        self.allowedWrites -= 1
        self.written += len(data)
        return len(data)


class RecordingWriter(io.BytesIO):

    def __init__(self):
        super().__init__()
        self.sizes = []

    def write(self, data):
        self.sizes.append(len(data))
        return super().write(data)


class HeaderAllowListTest(unittest.TestCase):

    def setUp(self):
        self.allowList = HeaderAllowList(['Content-Type', 'Set-Cookie'])

    def testCaseInsensitiveMembership(self):
        self.assertIn('content-type', self.allowList)
        self.assertIn('SET-COOKIE', self.allowList)
        self.assertNotIn('X-Internal', self.allowList)
        self.assertEqual(len(self.allowList), 2)
        self.assertEqual(list(self.allowList), ['Content-Type', 'Set-Cookie'])

    def testReadOnly(self):
        with self.assertRaises(AttributeError):
            self.allowList.names = ('X-Internal',)

    def testPickFromDict(self):
        picked = self.allowList.pick({'content-type': 'text/plain', 'X-Internal': 'leak'})
        self.assertEqual(picked, [('Content-Type', 'text/plain')])

    def testPickKeepsRepeatedHeaders(self):
        message = Message()
        message['Set-Cookie'] = 'a=1'
        message['Set-Cookie'] = 'b=2'
        message['X-Internal'] = 'leak'

        self.assertEqual(self.allowList.pick(message), [('Set-Cookie', 'a=1'), ('Set-Cookie', 'b=2')])

        headers = HTTPHeaderDict()
        headers.add('set-cookie', 'a=1')
        headers.add('set-cookie', 'b=2')
        headers.add('content-type', 'text/html')

        self.assertEqual(
            self.allowList.pick(headers),
            [('Content-Type', 'text/html'), ('Set-Cookie', 'a=1'), ('Set-Cookie', 'b=2')]
        )


class ParseByteRangeTest(unittest.TestCase):

    def testSatisfiable(self):
        self.assertEqual(parseByteRange('bytes=0-9', 100), (0, 9))
        self.assertEqual(parseByteRange('bytes=90-', 100), (90, 99))
        self.assertEqual(parseByteRange('bytes=90-1000', 100), (90, 99))
        self.assertEqual(parseByteRange('bytes=-10', 100), (90, 99))
        self.assertEqual(parseByteRange('bytes=-1000', 100), (0, 99))

    def testIgnored(self):
        for value in ('bytes=-', 'bytes=5-1', 'items=0-1', 'bytes=0-1,5-6', 'garbage'):
            with self.subTest(value=value):
                self.assertIsNone(parseByteRange(value, 100))

    def testUnsatisfiable(self):
        self.assertIs(parseByteRange('bytes=100-', 100), False)
        self.assertIs(parseByteRange('bytes=-0', 100), False)
        self.assertIs(parseByteRange('bytes=150-', 100), False)
        self.assertIs(parseByteRange('bytes=150-200', 100), False)


class LocalTransferTest(unittest.TestCase):

    def setUp(self):
        self.proxy = StreamProxy(ProxyConfig(chunkSize=1000))
        self._tempDirObj = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tempDirObj.name, 'a.bin')
        generateRandomFile(self.path, 4096)
        with open(self.path, 'rb') as f:
            self.content = f.read()
        self.fileStat = os.stat(self.path)

    def tearDown(self):
        self.proxy.close()
        self._tempDirObj.cleanup()

    def openLocal(self, requestHeaders=None):
        return self.proxy.openLocal(self.path, self.fileStat, requestHeaders or {})

    def testFullFile(self):
        transfer = self.openLocal()
        writer = RecordingWriter()

        self.assertEqual(transfer.statusCode, 200)
        self.assertIn(('Content-Length', '4096'), transfer.headers)
        self.assertIn(('Content-Type', DEFAULT_CONTENT_TYPE), transfer.headers)
        self.assertTrue(transfer.hasHeader('etag'))

        self.assertEqual(self.proxy.copyTo(transfer, writer), 4096)
        self.assertEqual(writer.getvalue(), self.content)
        self.assertTrue(all(size <= 1000 for size in writer.sizes))

    def testRange(self):
        transfer = self.openLocal({'Range': 'bytes=100-199'})
        writer = io.BytesIO()

        self.assertEqual(transfer.statusCode, 206)
        self.assertIn(('Content-Range', 'bytes 100-199/4096'), transfer.headers)
        self.assertEqual(self.proxy.copyTo(transfer, writer), 100)
        self.assertEqual(writer.getvalue(), self.content[100:200])

    def testUnsatisfiableRange(self):
        transfer = self.openLocal({'Range': 'bytes=5000-'})

        self.assertEqual(transfer.statusCode, 416)
        self.assertIn(('Content-Range', 'bytes */4096'), transfer.headers)
        self.assertEqual(self.proxy.copyTo(transfer, io.BytesIO()), 0)

    def testIfRangeMismatchSendsWholeFile(self):
        transfer = self.openLocal({'Range': 'bytes=0-9', 'If-Range': '"stale"'})
        self.assertEqual(transfer.statusCode, 200)
        transfer.close()

    def testNotModified(self):
        transfer = self.openLocal()
        transfer.close()
        etag = dict(transfer.headers)['ETag']

        self.assertEqual(self.openLocal({'If-None-Match': etag}).statusCode, 304)
        self.assertEqual(self.openLocal({'If-None-Match': '"other", ' + etag}).statusCode, 304)
        self.assertEqual(self.openLocal({'If-None-Match': '"other"'}).statusCode, 200)

        later = formatdate(self.fileStat.st_mtime + 60, usegmt=True)
        earlier = formatdate(self.fileStat.st_mtime - 60, usegmt=True)
        self.assertEqual(self.openLocal({'If-Modified-Since': later}).statusCode, 304)
        self.assertEqual(self.openLocal({'If-Modified-Since': earlier}).statusCode, 200)
        self.assertEqual(self.openLocal({'If-Modified-Since': 'yesterday'}).statusCode, 200)

    def testVanishedFile(self):
        with self.assertRaises(InternalError):
            self.proxy.openLocal(self.path + '.gone', self.fileStat, {})

    def testAbortedCopy(self):
        closed = []
        transfer = PreparedTransfer(200, [], reader=io.BytesIO(self.content).read, onClose=lambda: closed.append(True))

        with self.assertRaises(TransferAborted) as context:
            self.proxy.copyTo(transfer, FailingWriter(allowedWrites=2))

        self.assertEqual(context.exception.bytesWritten, 2000)
        self.assertIsInstance(context.exception.cause, BrokenPipeError)
        self.assertEqual(closed, [True])


class PreparedTransferTest(unittest.TestCase):

    def testReadStopsAtRemaining(self):
        source = io.BytesIO(b'0123456789')
        transfer = PreparedTransfer(200, [], reader=source.read, remaining=4)

        self.assertEqual(transfer.read(3), b'012')
        self.assertEqual(transfer.read(3), b'3')
        self.assertEqual(transfer.read(3), b'')

    def testCloseOnce(self):
        calls = []
        transfer = PreparedTransfer(200, [], onClose=lambda: calls.append(1))
        transfer.close()
        transfer.close()
        self.assertEqual(calls, [1])

    def testNoBody(self):
        self.assertEqual(PreparedTransfer(304, []).read(10), b'')


class RemoteTransferTest(GatewayTestBase):

    def setUp(self):
        super().setUp()
        self.proxy = StreamProxy()

    def tearDown(self):
        self.proxy.close()
        super().tearDown()

    def fetch(self, path, requestHeaders=None):
        transfer = self.proxy.openRemote(self.upstreamURL + path, requestHeaders or {})
        writer = io.BytesIO()
        self.proxy.copyTo(transfer, writer)
        return transfer, writer.getvalue()

    def testResponseHeadersFiltered(self):
        transfer, body = self.fetch('/file/a.bin')

        self.assertEqual(transfer.statusCode, 200)
        self.assertEqual(body, UPSTREAM_PAYLOAD)

        names = [name.lower() for name, value in transfer.headers]
        self.assertIn(('Content-Type', 'application/x-test-binary'), transfer.headers)
        self.assertIn(('ETag', '"upstream-etag"'), transfer.headers)
        self.assertEqual(names.count('set-cookie'), 2)
        self.assertNotIn('x-upstream-internal', names)
        self.assertNotIn('server-timing', names)
        self.assertNotIn('server', names)
        self.assertNotIn('date', names)

    def testDefaultContentType(self):
        transfer, body = self.fetch('/status/200')
        self.assertIn(('Content-Type', DEFAULT_CONTENT_TYPE), transfer.headers)

    def testRequestHeadersFiltered(self):
        transfer, body = self.fetch('/echo-headers', {
            'User-Agent': 'agent/1.0',
            'Cookie': 'session=1',
            'Authorization': 'Bearer token',
            'X-Internal-Secret': 'leak',
            'Referer': 'http://gateway/',
        })
        received = json.loads(body)

        self.assertEqual(received['user-agent'], 'agent/1.0')
        self.assertEqual(received['cookie'], 'session=1')
        self.assertEqual(received['authorization'], 'Bearer token')
        self.assertEqual(received['accept-encoding'], 'identity')
        self.assertNotIn('x-internal-secret', received)
        self.assertNotIn('referer', received)

    def testUpstreamCookiesNotShared(self):
        transfer, body = self.fetch('/file/a.bin')
        self.assertTrue(transfer.hasHeader('Set-Cookie'))

        # A later caller without a Cookie header must not inherit the first caller's cookies
        transfer, body = self.fetch('/echo-headers', {'User-Agent': 'other-caller'})
        received = json.loads(body)

        self.assertNotIn('cookie', received)
        self.assertEqual(len(self.proxy.session.cookies), 0)

    def testRedirectsFollowed(self):
        transfer, body = self.fetch('/redirect/20')
        self.assertEqual(transfer.statusCode, 200)
        self.assertEqual(body, UPSTREAM_PAYLOAD)

    def testTooManyRedirects(self):
        with self.assertRaises(UpstreamError) as context:
            self.proxy.openRemote(self.upstreamURL + '/redirect/21', {})
        self.assertEqual(context.exception.message, 'Too many redirects')
        self.assertEqual(context.exception.statusCode, 500)

    def testUpstreamStatusRelayed(self):
        for code in (403, 404, 500, 502):
            with self.subTest(code=code):
                with self.assertRaises(UpstreamError) as context:
                    self.proxy.openRemote(f'{self.upstreamURL}/status/{code}', {})
                self.assertEqual(context.exception.statusCode, code)
                self.assertTrue(context.exception.message.startswith(f'Request failed: {code}'))
                self.assertNotIn('secret', context.exception.message)

    def testNotModifiedPassedThrough(self):
        transfer, body = self.fetch('/not-modified', {'If-None-Match': '"upstream-etag"'})
        self.assertEqual(transfer.statusCode, 304)
        self.assertEqual(body, b'')
        self.assertFalse(transfer.hasHeader('Content-Length'))

    def testUnreachableUpstream(self):
        self.upstream.shutdown()
        self.upstream.server_close()
        self.servers.remove(self.upstream)

        with self.assertRaises(UpstreamError) as context:
            self.proxy.openRemote(self.upstreamURL + '/file/a.bin', {})
        self.assertEqual(context.exception.message, 'Failed to send request')


if __name__ == '__main__':
    unittest.main()

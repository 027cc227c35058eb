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

import json

from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, quote, urlsplit

from fda.Errors import GatewayError, TransferAborted
from fda.Kernel import PUBLIC_VERSION, getLogger
from fda.Paths import resolveLocalPath, statLocalFile
from fda.Proxy import StreamProxy
from fda.Resolver import canonicalize, checkNotExpired, parseSourceReference, prepareEnvelope, resolveParameters
from fda.Settings import DOWNLOAD_ROUTE
from fda.Transfer import TransferResult, getRealIP, publishTransfer

MAX_BODY_SIZE = 64 * 1024

logger = getLogger(__name__)


def contentDisposition(filename):
    """
    attachment; filename="<name>", plus an RFC 5987 filename* when the name is
    not plain ASCII (header values must stay latin-1 encodable).
    """
    fallback = filename.encode('ascii', 'replace').decode('ascii').replace('\\', '_').replace('"', "'")
    fallback = ''.join(ch if ch.isprintable() else '_' for ch in fallback)

    value = f'attachment; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return value


class DownloadHandler(BaseHTTPRequestHandler):

    protocol_version = 'HTTP/1.1'
    server_version = f'FileDownloadAgent/{PUBLIC_VERSION}'

    def __init__(self, *args, **kwargs):
        self.getPathMap = {
            DOWNLOAD_ROUTE: self._handleDownload,
        }

        self.postPathMap = {
            DOWNLOAD_ROUTE: self._handlePrepare,
        }

        super().__init__(*args, **kwargs)

    def _normalizeRequestPath(self):
        parsedURL = urlsplit(self.path)
        return parsedURL.path, parsedURL.query

    # Response helpers
    def _sendBytes(self, payload: bytes, ctype: str = "text/plain; charset=utf-8", status=HTTPStatus.OK):
        self.send_response(status)
        self.send_header("Content-Type", ctype)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _sendError(self, status, message):
        self.close_connection = True
        self._sendBytes(f'{message}\n'.encode('utf-8'), status=status)

    def _sendJSON(self, status, msg, data=None):
        payload = json.dumps({'code': int(status), 'msg': msg, 'data': data}).encode('utf-8')
        self._sendBytes(payload, "application/json", status=status)

    # GET handlers
    def _handleDownload(self, query):
        server = self.server
        config = server.config

        # Authorization and expiry must pass before any byte of the target is touched
        try:
            descriptor = resolveParameters(query, config.signKey, config.argon2Parameters)
            scheme, parsed = parseSourceReference(descriptor)
            descriptor = canonicalize(descriptor, parsed)
            checkNotExpired(descriptor.expiryTimestamp)

            if scheme == 'file':
                path = resolveLocalPath(config.directory, parsed.path)
                transfer = server.proxy.openLocal(path, statLocalFile(path), self.headers)
            else:
                transfer = server.proxy.openRemote(descriptor.sourceReference, self.headers)
        except GatewayError as e:
            logger.info(f'Download rejected ({int(e.statusCode)}): {e.message}')
            self._sendError(e.statusCode, e.message)
            return

        self._sendTransfer(descriptor, transfer)

    def _sendTransfer(self, descriptor, transfer):
        completed = True

        try:
            self.send_response(transfer.statusCode)
            for name, value in transfer.headers:
                self.send_header(name, value)
            self.send_header('Content-Disposition', contentDisposition(descriptor.displayFilename))
            self.send_header('Connection', 'close')
            self.end_headers()
        except OSError as e:
            # Caller went away before the response was committed
            transfer.close()
            logger.info(f'Client disconnected before headers: {e}')
            self.close_connection = True
            return

        self.close_connection = True

        try:
            written = self.server.proxy.copyTo(transfer, self.wfile)
        except TransferAborted as e:
            logger.warning(f'{descriptor.sourceReference}: {e}')
            written = e.bytesWritten
            completed = False

        publishTransfer(
            TransferResult(
                bytesWritten=written,
                sourceReference=descriptor.sourceReference,
                displayFilename=descriptor.displayFilename,
                callerAddress=getRealIP(self.headers, self.client_address[0] if self.client_address else ''),
                callerAgent=self.headers.get('User-Agent', ''),
                completed=completed,
            )
        )

    def do_GET(self):
        path, query = self._normalizeRequestPath()

        handler = self.getPathMap.get(path)
        if handler:
            handler(parse_qs(query))
        elif path in self.postPathMap:
            self._handleMethodNotAllowed()
        else:
            self._sendError(HTTPStatus.NOT_FOUND, 'Not Found')

    # POST handlers
    def _handlePrepare(self, data):
        try:
            token = prepareEnvelope(data, self.server.config.argon2Parameters)
        except GatewayError as e:
            self._sendJSON(e.statusCode, e.message)
            return
        except Exception as e:
            logger.exception(e)
            self._sendJSON(HTTPStatus.INTERNAL_SERVER_ERROR, 'Failed to encrypt data')
            return

        self._sendJSON(HTTPStatus.OK, 'success', token)

    def _readJSONBody(self):
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            return None

        if length <= 0 or length > MAX_BODY_SIZE:
            return None

        try:
            return json.loads(self.rfile.read(length))
        except ValueError:
            return None

    def do_POST(self):
        path, query = self._normalizeRequestPath()

        handler = self.postPathMap.get(path)
        if not handler:
            if path in self.getPathMap:
                self._handleMethodNotAllowed()
            else:
                self._sendError(HTTPStatus.NOT_FOUND, 'Not Found')
            return

        data = self._readJSONBody()
        if not isinstance(data, dict):
            self.close_connection = True
            self._sendJSON(HTTPStatus.BAD_REQUEST, 'Invalid request body')
            return

        handler(data)

    def _handleMethodNotAllowed(self):
        path, query = self._normalizeRequestPath()
        if path not in self.getPathMap and path not in self.postPathMap:
            self._sendError(HTTPStatus.NOT_FOUND, 'Not Found')
            return

        self.close_connection = True
        payload = b'Method Not Allowed\n'
        self.send_response(HTTPStatus.METHOD_NOT_ALLOWED)
        self.send_header('Allow', 'GET, POST')
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != 'HEAD':
            self.wfile.write(payload)

    do_HEAD = _handleMethodNotAllowed
    do_PUT = _handleMethodNotAllowed
    do_DELETE = _handleMethodNotAllowed
    do_PATCH = _handleMethodNotAllowed
    do_OPTIONS = _handleMethodNotAllowed

    def log_message(self, format, *args):
        logger.debug(f'{self.address_string()} - {format % args}')


class Server(ThreadingHTTPServer):

    request_queue_size = 64
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, config, serverAddress, requestHandlerClass=None, proxy=None, sslContext=None):
        self.config = config
        self.proxy = proxy or StreamProxy(config.proxyConfig)

        if requestHandlerClass is None:
            requestHandlerClass = DownloadHandler

        super().__init__(serverAddress, requestHandlerClass)

        if sslContext is not None:
            self.socket = sslContext.wrap_socket(self.socket, server_side=True)

    @property
    def port(self):
        return self.server_address[1]

    def handle_error(self, request, clientAddress):
        logger.exception(f'Unhandled error while serving {clientAddress}')

    def start(self):
        self.serve_forever()

    def server_close(self):
        super().server_close()
        self.proxy.close()


def createServer(config, host='', port=0, handlerClass=None, sslContext=None):
    # Factory function to create a Server instance bound to host:port
    return Server(config, (host, port), handlerClass, sslContext=sslContext)

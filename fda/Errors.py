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

from http import HTTPStatus

# =============================================================================
# Gateway Exception Classes
# =============================================================================


class GatewayError(Exception):
    """Base exception for every stage of the download pipeline

    The message is what the caller sees; keep it short and free of paths.
    """

    statusCode = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message, statusCode=None):
        super().__init__(message)
        self.message = message
        if statusCode is not None:
            self.statusCode = statusCode


class FormatError(GatewayError):
    """Malformed JSON, base64 or timestamp (400)"""
    statusCode = HTTPStatus.BAD_REQUEST


class AuthError(GatewayError):
    """Signature mismatch or envelope that cannot be authenticated (400)"""
    statusCode = HTTPStatus.BAD_REQUEST


class ExpiredError(GatewayError):
    """Link deadline has passed (403)"""
    statusCode = HTTPStatus.FORBIDDEN


class NotFoundError(GatewayError):
    """Local file does not exist (404)"""
    statusCode = HTTPStatus.NOT_FOUND


class PathError(GatewayError):
    """Traversal attempt or a path that is not a regular file (400)"""
    statusCode = HTTPStatus.BAD_REQUEST


class UpstreamError(GatewayError):
    """Upstream refused, redirected too often or could not be reached"""
    statusCode = HTTPStatus.INTERNAL_SERVER_ERROR


class InternalError(GatewayError):
    """I/O failure after a successful resolution (500)"""
    statusCode = HTTPStatus.INTERNAL_SERVER_ERROR


class TransferAborted(Exception):
    """Raised when the byte copy fails after the response was committed"""

    def __init__(self, bytesWritten, cause):
        super().__init__(f'Transfer aborted after {bytesWritten} bytes: {cause}')
        self.bytesWritten = bytesWritten
        self.cause = cause

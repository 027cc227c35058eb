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
import posixpath
import re
import time

from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import unquote, urlsplit

from fda import Envelope
from fda.Errors import AuthError, ExpiredError, FormatError, GatewayError
from fda.Kernel import getLogger
from fda.Settings import DEFAULT_ARGON2_PARAMETERS
from fda.Signature import verifySignature

ALLOWED_SCHEMES = ('http', 'https', 'file')
DEFAULT_FILENAME = 'download'

TIMESTAMP_PATTERN = re.compile(r'^[+-]?\d+$')

logger = getLogger(__name__)


@dataclass(frozen=True)
class RequestDescriptor:
    sourceReference: str
    displayFilename: str = ''
    expiryTimestamp: Optional[str] = None
    signature: Optional[str] = None
    encrypted: bool = False

    @classmethod
    def fromMapping(cls, data, encrypted=False):
        expire = data.get('expire')
        if expire is not None and not isinstance(expire, str):
            expire = str(expire)

        return cls(
            sourceReference=_text(data.get('url')),
            displayFilename=_text(data.get('filename')),
            expiryTimestamp=expire or None,
            signature=_text(data.get('sign')) or None,
            encrypted=encrypted,
        )

    def toPayload(self):
        """Fields carried inside an envelope, empty ones omitted"""
        payload = {'url': self.sourceReference}
        if self.displayFilename:
            payload['filename'] = self.displayFilename
        if self.expiryTimestamp:
            payload['expire'] = self.expiryTimestamp
        return payload


def _text(value):
    if value is None:
        return ''
    return value if isinstance(value, str) else str(value)


def _first(query, name):
    # parse_qs() gives lists, plain dicts give strings
    value = query.get(name)
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _decryptDescriptor(token, secret, parameters):
    try:
        plaintext = Envelope.decrypt(secret, Envelope.decodeToken(token), parameters)
        data = json.loads(plaintext)
        if not isinstance(data, dict):
            raise FormatError('Envelope payload is not an object')
    except (GatewayError, ValueError) as e:
        # The caller only learns that the envelope is unusable
        logger.error(f'enc rejected: {type(e).__name__}: {e}')
        raise AuthError('Invalid enc') from e

    return RequestDescriptor.fromMapping(data, encrypted=True)


def resolveParameters(query, secret, parameters=DEFAULT_ARGON2_PARAMETERS):
    """
    Turn query parameters into a RequestDescriptor.

    An 'enc' envelope wins over clear parameters and skips the signature
    check, since decrypting it already proves the issuer knew the secret.

    Args:
        query: mapping of parameter name to value (or list of values)
        secret: server sign key, empty for open mode
        parameters: Argon2Parameters used for envelopes

    Raises:
        AuthError: bad envelope or signature
        FormatError: url missing
    """
    token = _first(query, 'enc')
    if token:
        descriptor = _decryptDescriptor(token, secret, parameters)
    else:
        descriptor = RequestDescriptor(
            sourceReference=_first(query, 'url') or '',
            displayFilename=_first(query, 'filename') or '',
            expiryTimestamp=_first(query, 'expire') or None,
            signature=_first(query, 'sign') or None,
        )

    if not descriptor.sourceReference:
        raise FormatError('Missing required parameter: url')

    if not descriptor.encrypted:
        verifySignature(descriptor, secret)

    return descriptor


def parseSourceReference(descriptor):
    """
    Split the source reference and check its scheme.

    Returns:
        tuple: (scheme, SplitResult)
    """
    try:
        parsed = urlsplit(descriptor.sourceReference)
    except ValueError as e:
        raise FormatError('Failed to parse url') from e

    scheme = parsed.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise FormatError('Invalid url')

    if scheme != 'file' and not parsed.hostname:
        raise FormatError('Invalid url')

    return scheme, parsed


def canonicalize(descriptor, parsed):
    """Fill in a display filename from the URL when the caller gave none"""
    if descriptor.displayFilename:
        return descriptor

    filename = posixpath.basename(unquote(parsed.path).rstrip('/'))
    if not filename:
        filename = parsed.hostname or DEFAULT_FILENAME

    return replace(descriptor, displayFilename=filename)


def checkNotExpired(expiryTimestamp, now=None):
    """
    Reject links whose deadline (epoch seconds) is before now.

    A deadline equal to the current second is still valid.

    Raises:
        FormatError: not an integer timestamp
        ExpiredError: deadline has passed
    """
    if expiryTimestamp is None or expiryTimestamp == '':
        return

    text = str(expiryTimestamp).strip()
    if not TIMESTAMP_PATTERN.match(text):
        raise FormatError('Invalid expire parameter: must be a valid UNIX timestamp')

    deadline = int(text)
    if now is None:
        now = time.time()

    if int(now) > deadline:
        raise ExpiredError('Link has expired')


def prepareEnvelope(body, parameters=DEFAULT_ARGON2_PARAMETERS):
    """
    Mint an encrypted download token from a JSON request body.

    The body's 'sign' is the caller-chosen key: it is removed from the
    payload and used to encrypt the remaining fields.

    Returns:
        str: URL-safe, unpadded token for the 'enc' query parameter
    """
    if not isinstance(body, dict):
        raise FormatError('Invalid request body')

    descriptor = RequestDescriptor.fromMapping(body)
    if not descriptor.sourceReference:
        raise FormatError('Missing required parameter: url')

    signKey = descriptor.signature or ''
    plaintext = json.dumps(descriptor.toPayload(), separators=(',', ':')).encode('utf-8')

    return Envelope.encodeToken(Envelope.encrypt(signKey, plaintext, parameters))

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

import hashlib

from fda.Errors import AuthError
from fda.Kernel import getLogger

SEPARATOR = '|'

logger = getLogger(__name__)


def computeFingerprint(orderedParams, secret):
    """
    Compute the shared-secret tag of a download link.

    sign = md5(filename | url | expire | secret), empty fields are left out
    entirely (no empty slot between separators). MD5 is only a keyed tag
    here, never a confidentiality primitive.

    Args:
        orderedParams: values in (filename, url, expire) order
        secret: the server sign key

    Returns:
        str: lowercase hex digest
    """
    fields = [value for value in orderedParams if value]
    fields.append(secret)
    return hashlib.md5(SEPARATOR.join(fields).encode('utf-8')).hexdigest()


def verifySignature(descriptor, secret):
    """
    Check the caller's sign against the fingerprint of the descriptor.

    An empty secret means the server runs in open mode and nothing is checked.

    Raises:
        AuthError: signature missing or different
    """
    if not secret:
        return

    expected = computeFingerprint(
        (descriptor.displayFilename, descriptor.sourceReference, descriptor.expiryTimestamp), secret
    )
    if (descriptor.signature or '').lower() != expected:
        logger.info(f'Signature mismatch for {descriptor.sourceReference}')
        raise AuthError('Invalid sign')

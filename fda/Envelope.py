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
"""
Password-based authenticated encryption of small payloads.

Envelope format (JSON, byte fields in standard base64):

    {
        "kdf": "argon2id",
        "salt": "<16 bytes>",
        "cipher": "aes-256-gcm",
        "nonce": "<12 bytes>",
        "ciphertext": "<ciphertext || 16-byte tag>"
    }

The Argon2id costs are not part of the envelope; see Argon2Parameters.
"""

import base64
import binascii
import json

from dataclasses import dataclass

from fda.Errors import AuthError, FormatError
from fda.Kernel import getLogger
from fda.Settings import DEFAULT_ARGON2_PARAMETERS
from fda.crypto import CryptoAuthenticationError, CryptoInterface, wipe

KDF_ARGON2ID = 'argon2id'
CIPHER_AES_256_GCM = 'aes-256-gcm'

SALT_SIZE = 16
NONCE_SIZE = 12

logger = getLogger(__name__)

_crypto = None


def getCrypto():
    global _crypto
    if _crypto is None:
        _crypto = CryptoInterface()
    return _crypto


@dataclass(frozen=True)
class EncryptedEnvelope:
    salt: bytes
    nonce: bytes
    ciphertext: bytes
    kdf: str = KDF_ARGON2ID
    cipher: str = CIPHER_AES_256_GCM

    def toJSON(self) -> bytes:
        return json.dumps({
            'kdf': self.kdf,
            'salt': base64.b64encode(self.salt).decode('ascii'),
            'cipher': self.cipher,
            'nonce': base64.b64encode(self.nonce).decode('ascii'),
            'ciphertext': base64.b64encode(self.ciphertext).decode('ascii'),
        }, separators=(',', ':')).encode('utf-8')

    @classmethod
    def fromJSON(cls, blob: bytes) -> 'EncryptedEnvelope':
        """
        Parse an envelope. Raises FormatError for anything malformed and
        AuthError when the scheme identifiers are not the supported ones.
        """
        try:
            data = json.loads(blob)
        except (ValueError, TypeError) as e:
            raise FormatError('Malformed envelope') from e

        if not isinstance(data, dict):
            raise FormatError('Malformed envelope')

        if data.get('kdf') != KDF_ARGON2ID or data.get('cipher') != CIPHER_AES_256_GCM:
            raise AuthError(f"Unsupported envelope scheme: {data.get('kdf')!r}/{data.get('cipher')!r}")

        try:
            salt = base64.b64decode(data['salt'], validate=True)
            nonce = base64.b64decode(data['nonce'], validate=True)
            ciphertext = base64.b64decode(data['ciphertext'], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise FormatError('Malformed envelope') from e

        if len(salt) != SALT_SIZE or len(nonce) != NONCE_SIZE:
            raise FormatError('Malformed envelope')

        return cls(salt=salt, nonce=nonce, ciphertext=ciphertext)


def encrypt(secret: str, plaintext: bytes, parameters=DEFAULT_ARGON2_PARAMETERS, crypto=None) -> bytes:
    """
    Encrypt plaintext under a key derived from secret.

    A fresh salt and nonce are drawn for every call, so encrypting the same
    plaintext twice never yields the same envelope.

    Returns:
        bytes: the JSON envelope
    """
    crypto = crypto or getCrypto()

    salt = crypto.randomBytes(SALT_SIZE)
    nonce = crypto.randomBytes(NONCE_SIZE)

    key = None
    try:
        key = crypto.deriveArgon2idKey(secret, salt, parameters)
        ciphertext = crypto.encryptAESGCM(key, plaintext, nonce)
    finally:
        wipe(key)

    return EncryptedEnvelope(salt=salt, nonce=nonce, ciphertext=ciphertext).toJSON()


def decrypt(secret: str, envelopeBytes: bytes, parameters=DEFAULT_ARGON2_PARAMETERS, crypto=None) -> bytes:
    """
    Reverse encrypt(). A wrong secret and a modified envelope fail the same way.

    Raises:
        FormatError: envelope is not valid JSON/base64
        AuthError: unsupported scheme or authentication failure
    """
    crypto = crypto or getCrypto()
    envelope = EncryptedEnvelope.fromJSON(envelopeBytes)

    key = None
    try:
        key = crypto.deriveArgon2idKey(secret, envelope.salt, parameters)
        return crypto.decryptAESGCM(key, envelope.nonce, envelope.ciphertext)
    except CryptoAuthenticationError as e:
        raise AuthError('Envelope decryption failed') from e
    finally:
        wipe(key)


def encodeToken(envelopeBytes: bytes) -> str:
    """URL-safe base64 without padding, suitable for a query parameter"""
    return base64.urlsafe_b64encode(envelopeBytes).rstrip(b'=').decode('ascii')


def decodeToken(token: str) -> bytes:
    """Inverse of encodeToken(); padded input is accepted as well"""
    try:
        token = token.strip().encode('ascii')
        token += b'=' * (-len(token) % 4)
        return base64.urlsafe_b64decode(token)
    except (UnicodeEncodeError, binascii.Error, ValueError) as e:
        raise FormatError('Malformed token') from e

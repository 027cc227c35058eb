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

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.argon2 import Argon2id

from fda.Kernel import getLogger
from fda.crypto import CryptoAuthenticationError, CryptoBackend

logger = getLogger(__name__)


class CryptographyBackend(CryptoBackend):
    """Cryptography library backend implementation"""

    def __init__(self):
        self.AESGCM = AESGCM
        self.Argon2id = Argon2id

    def getName(self):
        return "cryptography"

    def deriveArgon2idKey(self, password, salt, parameters):
        """Derive key using Argon2id (memory cost in KiB)"""
        if isinstance(password, str):
            password = password.encode('utf-8')

        kdf = self.Argon2id(
            salt=salt,
            length=parameters.keyLength,
            iterations=parameters.timeCost,
            lanes=parameters.parallelism,
            memory_cost=parameters.memoryCostKiB,
        )
        # derive() returns immutable bytes that cannot be zeroed; only this mutable copy is wiped by callers
        return bytearray(kdf.derive(password))

    def encryptAESGCM(self, key, plaintext, nonce, aad=None):
        """Encrypt with AES-GCM, returns ciphertext+tag"""
        if isinstance(plaintext, str):
            plaintext = plaintext.encode('utf-8')

        return self.AESGCM(key).encrypt(nonce, plaintext, aad)

    def decryptAESGCM(self, key, nonce, ciphertextWithTag, aad=None):
        """Decrypt with AES-GCM, returns plaintext"""
        try:
            return self.AESGCM(key).decrypt(nonce, ciphertextWithTag, aad)
        except InvalidTag as e:
            raise CryptoAuthenticationError('AES-GCM authentication failed') from e

    def randomBytes(self, length):
        return os.urandom(length)

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

import importlib

from abc import ABC, abstractmethod

from fda.Kernel import getLogger

logger = getLogger(__name__)

DEFAULT_BACKEND = 'cryptography'


class CryptoBackend(ABC):
    """Abstract base class for cryptographic backends"""

    @abstractmethod
    def getName(self):
        """Get backend name"""
        pass

    @abstractmethod
    def deriveArgon2idKey(self, password, salt, parameters):
        """Derive a key with Argon2id, returns a mutable bytearray the caller must wipe"""
        pass

    @abstractmethod
    def encryptAESGCM(self, key, plaintext, nonce, aad=None):
        """Encrypt with AES-GCM, returns ciphertext+tag"""
        pass

    @abstractmethod
    def decryptAESGCM(self, key, nonce, ciphertextWithTag, aad=None):
        """Decrypt with AES-GCM, returns plaintext or raises CryptoAuthenticationError"""
        pass

    @abstractmethod
    def randomBytes(self, length):
        """Cryptographically secure random bytes"""
        pass


class CryptoAuthenticationError(Exception):
    """AEAD tag did not verify (wrong key or modified data)"""
    pass


class CryptoInterface:
    """Main crypto interface, delegates to a named backend"""

    def __init__(self, backendName=DEFAULT_BACKEND):
        self.backend = self._initializeBackend(backendName)

    def _initializeBackend(self, backendName):
        backendModule = f'{backendName[0].upper()}{backendName[1:]}'
        try:
            module = importlib.import_module(f'fda.crypto.{backendModule}')
        except ImportError as e:
            logger.error(f"[CRYPTO] Backend '{backendName}' not available: {e}")
            raise RuntimeError(f"Crypto backend '{backendName}' is not available - please install '{backendName}'")

        return getattr(module, f'{backendModule}Backend')()

    def getBackendName(self):
        return self.backend.getName()

    def __getattr__(self, name):
        # Delegate any undefined method to backend
        return getattr(self.backend, name)


def wipe(buffer):
    """
    Overwrite a mutable buffer with zeros in place.

    Only the buffer itself is cleared. Intermediate immutable copies made by
    the crypto library (the bytes returned by a KDF) stay in memory until
    they are garbage-collected.
    """
    if buffer is None:
        return

    for i in range(len(buffer)):
        buffer[i] = 0

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
import unittest

from fda.Errors import AuthError
from fda.Resolver import RequestDescriptor
from fda.Signature import computeFingerprint, verifySignature


def md5Hex(text):
    return hashlib.md5(text.encode('utf-8')).hexdigest()


class ComputeFingerprintTest(unittest.TestCase):

    def testAllFields(self):
        self.assertEqual(
            computeFingerprint(('a.bin', 'http://host/a.bin', '1700000000'), 'k1'),
            md5Hex('a.bin|http://host/a.bin|1700000000|k1')
        )

    def testEmptyFieldsLeftOut(self):
        self.assertEqual(computeFingerprint(('a.bin', 'http://host/a.bin', None), 'k1'), md5Hex('a.bin|http://host/a.bin|k1'))
        self.assertEqual(computeFingerprint(('', 'http://host/a.bin', ''), 'k1'), md5Hex('http://host/a.bin|k1'))
        self.assertEqual(computeFingerprint(('', 'http://host/a.bin', '42'), 'k1'), md5Hex('http://host/a.bin|42|k1'))

    def testDeterministic(self):
        params = ('名前.bin', 'file:///名前.bin', '1')
        self.assertEqual(computeFingerprint(params, 'k1'), computeFingerprint(params, 'k1'))
        self.assertNotEqual(computeFingerprint(params, 'k1'), computeFingerprint(params, 'k2'))

    def testLowercaseHex(self):
        digest = computeFingerprint(('a', 'b', 'c'), 'k')
        self.assertEqual(len(digest), 32)
        self.assertEqual(digest, digest.lower())


class VerifySignatureTest(unittest.TestCase):

    def makeDescriptor(self, signature):
        return RequestDescriptor(sourceReference='http://host/a.bin', displayFilename='a.bin', signature=signature)

    def testValidSignature(self):
        verifySignature(self.makeDescriptor(md5Hex('a.bin|http://host/a.bin|k1')), 'k1')

    def testUppercaseSignatureAccepted(self):
        verifySignature(self.makeDescriptor(md5Hex('a.bin|http://host/a.bin|k1').upper()), 'k1')

    def testInvalidSignature(self):
        for signature in (None, '', '0' * 32, md5Hex('a.bin|http://host/a.bin|k2')):
            with self.subTest(signature=signature):
                with self.assertRaises(AuthError) as context:
                    verifySignature(self.makeDescriptor(signature), 'k1')
                self.assertEqual(context.exception.message, 'Invalid sign')

    def testOpenModeSkipsCheck(self):
        verifySignature(self.makeDescriptor(None), '')
        verifySignature(self.makeDescriptor('garbage'), '')


if __name__ == '__main__':
    unittest.main()

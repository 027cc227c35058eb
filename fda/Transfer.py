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

from dataclasses import dataclass

from user_agents import parse as parseUserAgent

from fda.Kernel import FDAEvent, getLogger
from fda.Utils import formatSize

logger = getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    bytesWritten: int
    sourceReference: str
    displayFilename: str
    callerAddress: str
    callerAgent: str
    completed: bool = True


def getRealIP(headers, remoteAddress):
    """
    Best guess of the caller's address behind reverse proxies.

    X-Forwarded-For (first entry) wins over X-Real-IP, which wins over the
    socket peer address.
    """
    forwardedFor = headers.get('X-Forwarded-For')
    if forwardedFor:
        return forwardedFor.split(',')[0].strip()

    realIP = headers.get('X-Real-IP')
    if realIP:
        return realIP.strip()

    address = remoteAddress or ''
    if address.startswith('[') and ']' in address:
        return address[1:address.index(']')]

    return address


def publishTransfer(result):
    FDAEvent.transferComplete.trigger(result=result)


def describeAgent(userAgent):
    """Summarise a User-Agent header as os/browser(version), e.g. Windows 10/Chrome(120.0.0)"""
    if not userAgent:
        return '-'

    agent = parseUserAgent(userAgent)
    system = f'{agent.os.family} {agent.os.version_string}'.strip()
    return f'{system}/{agent.browser.family}({agent.browser.version_string})'


def logTransfer(result, **kwargs):
    state = '' if result.completed else ' (aborted)'
    logger.info(
        f'{result.sourceReference} - {result.displayFilename} | Size: {formatSize(result.bytesWritten)}{state} | '
        f'IP: {result.callerAddress} | UA: {describeAgent(result.callerAgent)}'
    )


FDAEvent.transferComplete.subscribe(logTransfer)

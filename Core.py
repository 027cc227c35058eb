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
import signal
import sys

from fda.CLI import (
    buildConfig, buildSSLContext, configureCLIParser, configureLogging, getVersionInfo, loadEnvFile, normalizePort
)
from fda.Kernel import getLogger
from fda.Server import createServer
from fda.Utils import flushPrint

logger = getLogger(__name__)


def setupGracefulShutdown():
    """Setup signal handlers for graceful shutdown on multiple Ctrl+C"""
    context = {'shutdownInProgress': False}

    def signalHandler(signum, frame):
        if context['shutdownInProgress']:
            # Second signal - force immediate exit without cleanup messages
            os._exit(0)
        else:
            context['shutdownInProgress'] = True
            raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, signalHandler)
    signal.signal(signal.SIGTERM, signalHandler)


def runServer(args):
    configureLogging(args.logLevel)

    logger.info(getVersionInfo())

    config = buildConfig(args)
    if config.isOpenMode:
        logger.warning('No sign key set: signature checks are disabled and any caller may download')
    else:
        logger.info('Sign key has been set')

    logger.info(f'Download directory: {config.directory}')

    sslContext = buildSSLContext(args)
    server = createServer(config, args.host, normalizePort(args.port), sslContext=sslContext)

    scheme = 'https' if sslContext else 'http'
    logger.info(f'Server is running on {scheme}://{args.host or "0.0.0.0"}:{server.port}')

    try:
        server.start()
    finally:
        server.server_close()

    return 0


def main(argv=None):
    loadEnvFile()

    parser = configureCLIParser()
    args = parser.parse_args(argv)

    if args.version:
        flushPrint(getVersionInfo())
        return 0

    setupGracefulShutdown()

    try:
        return runServer(args)
    except KeyboardInterrupt:
        logger.info('Server stopped')
        return 0


if __name__ == '__main__':
    try:
        sys.exit(main() or 0)
    except OSError as e:
        logger.error(f'Server start error: {e}')
        sys.exit(1)

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

import argparse
import json
import os
import logging
import logging.config
import platform
import ssl
import sys

from fda.Kernel import LOG_LEVEL_MAPPING, PUBLIC_VERSION, configureGlobalLogLevel, getLogger
from fda.Settings import DEFAULT_DIRECTORY_NAME, DEFAULT_HOST, DEFAULT_PORT, GatewayConfig
from fda.Utils import flushPrint, getEnv

logger = getLogger(__name__)


def loadEnvFile(envFilePath='.env'):
    """
    Load environment variables from a .env file.
    Only sets variables that are not already defined in os.environ.

    Returns:
        int: number of variables loaded
    """
    if not os.path.isfile(envFilePath):
        return 0

    loadedCount = 0
    with open(envFilePath, 'r', encoding='utf-8') as f:
        for lineNum, line in enumerate(f, 1):
            line = line.strip()

            if not line or line.startswith('#'):
                continue

            if '=' not in line:
                logger.warning(f'.env line {lineNum}: Invalid format (missing =)')
                continue

            key, _, value = line.partition('=')
            key = key.strip()
            value = value.strip()

            if not key:
                logger.warning(f'.env line {lineNum}: Empty key')
                continue

            # Remove quotes if present (both single and double)
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]

            # Environment takes precedence
            if key not in os.environ:
                os.environ[key] = value
                loadedCount += 1
            else:
                logger.debug(f'.env: Skipped {key} (already set in environment)')

    logger.info(f'Loaded {loadedCount} environment variables from {envFilePath}')
    return loadedCount


def configureLogging(logLevel):
    """Configure logging from a level name or a logging configuration JSON file

    Priority order:
    1. logLevel parameter (from --log-level CLI argument)
    2. FDA_LOG_LEVEL environment variable
    3. INFO
    """

    def suppressNoisyLogger():
        logging.getLogger('urllib3').setLevel(logging.INFO)
        logging.getLogger('urllib3.connectionpool').setLevel(logging.INFO)
        logging.getLogger('sentry_sdk').setLevel(logging.INFO)

    if not logLevel:
        logLevel = getEnv('FDA_LOG_LEVEL', None) or 'INFO'

    if os.path.isfile(logLevel):
        try:
            with open(logLevel, 'r') as configFile:
                configDict = json.load(configFile)

            logging.config.dictConfig(configDict)
            logger.info(f"Logging configured from file: {logLevel}")
            suppressNoisyLogger()
            return logLevel

        except (json.JSONDecodeError, ValueError, KeyError) as e:
            flushPrint(f"Failed to load logging config from {logLevel}: {e}")
            flushPrint("Falling back to default logging level configuration")
            logLevel = 'INFO'

    if logLevel.upper() in LOG_LEVEL_MAPPING:
        configureGlobalLogLevel(LOG_LEVEL_MAPPING[logLevel.upper()])
    else:
        configureGlobalLogLevel(logging.INFO)
        logger.warning(f"Invalid logging level '{logLevel}', using INFO as default")

    suppressNoisyLogger()

    return logLevel


def getVersionInfo():
    uname = platform.uname()
    return (
        f'File Download Agent v{PUBLIC_VERSION} '
        f'(Python {platform.python_version()} {uname.system.lower()}/{uname.machine.lower()})'
    )


def configureCLIParser():
    """Every option falls back to its FDA_* environment variable"""
    parser = argparse.ArgumentParser(
        prog='fda',
        description='Authenticated download gateway: streams local or remote files behind signed links.',
    )

    parser.add_argument('--host', default=getEnv('FDA_HOST', DEFAULT_HOST), help='server host')
    parser.add_argument('--port', type=int, default=getEnv('FDA_PORT', DEFAULT_PORT), help='server port')
    parser.add_argument(
        '--sign-key', dest='signKey', default=getEnv('FDA_SIGN_KEY', ''), help='server download sign key'
    )
    parser.add_argument(
        '--dir', dest='directory', default=getEnv('FDA_DIR', ''),
        help=f'download directory, default ./{DEFAULT_DIRECTORY_NAME} next to the program'
    )
    parser.add_argument(
        '--log-level', dest='logLevel', default=getEnv('FDA_LOG_LEVEL', ''),
        help='log level (debug, info, warn, error) or a logging config JSON file'
    )
    parser.add_argument('--cert-file', dest='certFile', default=getEnv('FDA_CERT_FILE', ''), help='cert file path')
    parser.add_argument(
        '--cert-key-file', dest='certKeyFile', default=getEnv('FDA_CERT_KEY_FILE', ''), help='cert key file path'
    )
    parser.add_argument('--version', action='store_true', help='show version')

    return parser


def normalizePort(port):
    if port is None or port <= 0 or port >= 65535:
        return DEFAULT_PORT
    return port


def resolveDirectory(directory):
    """
    Use the given directory, or ./files next to the program (created on demand).
    """
    if directory:
        return os.path.abspath(directory)

    baseDir = os.path.dirname(os.path.abspath(sys.argv[0] or __file__))
    directory = os.path.join(baseDir, DEFAULT_DIRECTORY_NAME)
    os.makedirs(directory, exist_ok=True)
    return directory


def buildConfig(args):
    return GatewayConfig(signKey=args.signKey or '', directory=resolveDirectory(args.directory))


def buildSSLContext(args):
    if not (args.certFile and args.certKeyFile):
        return None

    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(args.certFile, args.certKeyFile)
    return context

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
import posixpath
import stat

from urllib.parse import unquote

from fda.Errors import InternalError, NotFoundError, PathError
from fda.Kernel import getLogger

logger = getLogger(__name__)


def resolveLocalPath(root, rawReference):
    """
    Map a file:// path onto the filesystem, confined to root.

    The reference is percent-decoded and normalized relative to root before
    joining. Anything that would climb above root is rejected, never clamped
    back inside it.

    Args:
        root: download directory
        rawReference: path component of the file:// URL, still percent-encoded

    Returns:
        str: absolute path inside root

    Raises:
        PathError: empty reference or traversal attempt
    """
    decoded = unquote(rawReference or '')
    if not decoded or '\x00' in decoded:
        raise PathError('Invalid file path')

    relative = posixpath.normpath(decoded.replace('\\', '/').lstrip('/'))
    if relative == '..' or relative.startswith('../'):
        logger.warning(f'Path traversal rejected: {rawReference!r}')
        raise PathError('Invalid file path')

    root = os.path.abspath(root)
    candidate = os.path.normpath(os.path.join(root, *relative.split('/')))

    # os.path.join() discards root when a segment looks absolute (e.g. a drive)
    if os.path.commonpath([root, candidate]) != root:
        logger.warning(f'Path escapes download directory: {rawReference!r}')
        raise PathError('Invalid file path')

    return candidate


def statLocalFile(path):
    """
    Returns:
        os.stat_result: of a regular file

    Raises:
        NotFoundError: nothing at path
        PathError: path is a directory or another non-regular file
        InternalError: any other I/O failure
    """
    try:
        fileStat = os.stat(path)
    except (FileNotFoundError, NotADirectoryError) as e:
        raise NotFoundError('File not found') from e
    except OSError as e:
        logger.error(f'Unable to stat {path}: {e}')
        raise InternalError('Unable to retrieve file info') from e

    if not stat.S_ISREG(fileStat.st_mode):
        raise PathError('Requested path is not a file')

    return fileStat

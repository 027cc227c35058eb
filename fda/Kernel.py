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
import logging
import threading

# Error reporting is disabled unless SENTRY_DSN is provided explicitly.
import sentry_sdk

from signalslot import Signal

from sentry_sdk.integrations.logging import SentryHandler, LoggingIntegration
from sentry_sdk.integrations import atexit as sentryAtexit

PUBLIC_VERSION = '1.2.0'

# Map string levels to logging constants for standard level names
LOG_LEVEL_MAPPING = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARN': logging.WARNING,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR
}


def configureGlobalLogLevel(logLevel):
    """
    Configure the global logging level for the application.
    This affects all loggers created via getLogger().

    Args:
        logLevel: Logging level (logging.DEBUG, logging.INFO, etc.)
    """
    rootLogger = logging.getLogger()
    rootLogger.setLevel(logLevel)

    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    # Add console handler if none exists
    if not rootLogger.handlers:
        consoleHandler = logging.StreamHandler()
        consoleHandler.setLevel(logLevel)
        consoleHandler.setFormatter(formatter)
        rootLogger.addHandler(consoleHandler)
    else:
        for handler in rootLogger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, SentryHandler):
                handler.setLevel(logLevel)
                handler.setFormatter(formatter)


if os.getenv('FDA_LOG_LEVEL', '').upper() in LOG_LEVEL_MAPPING:
    configureGlobalLogLevel(LOG_LEVEL_MAPPING[os.getenv('FDA_LOG_LEVEL').upper()])


def getLogger(name, version=PUBLIC_VERSION):
    """
    Get a logger with Sentry integration. Sentry is only initialized when SENTRY_DSN is set,
    and only once per process (Sentry's own client state is the source of truth).

    Args:
        name: Logger name
        version: Version string for logging context
    """
    try:
        sentryDsn = os.getenv('SENTRY_DSN')
        sentryInitialized = False

        if sentryDsn and not sentry_sdk.get_client().is_active():
            # Suppress "sentry is attempting to send pending events..." on exit
            sentryAtexit.default_callback = lambda pending, timeout: None

            sentry_sdk.init(
                dsn=sentryDsn,
                release=version,
                default_integrations=False,
                integrations=[
                    LoggingIntegration(),
                    sentryAtexit.AtexitIntegration(),
                ],
            )
            sentryInitialized = True

        logger = logging.getLogger(name)

        if sentryDsn and not any(isinstance(h, SentryHandler) for h in logger.handlers):
            formatter = logging.Formatter('%(asctime)s version[%(version)s] : %(message)s')

            syslog = SentryHandler()
            syslog.setFormatter(formatter)
            logger.addHandler(syslog)
            logger = logging.LoggerAdapter(logger, {'version': version or 'unknown'})

        if sentryInitialized:
            logger.debug('Sentry initialized')

        return logger

    except Exception as e:
        fallbackLogger = logging.getLogger(name)

        # If Sentry setup fails, log the error and continue with standard logging
        fallbackLogger.warning(f"Failed to initialize Sentry: {e}")

        return fallbackLogger


class Singleton:
    """
    Thread-safe singleton base class that can be inherited by other classes.
    Subclasses override initialize() for custom initialization.
    """

    _instances = {}
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        if cls not in cls._instances:
            with cls._lock:
                if cls not in cls._instances:
                    cls._instances[cls] = super().__new__(cls)
        return cls._instances[cls]

    def __init__(self, *args, **kwargs):
        if not hasattr(self, '_initialized'):
            self.initialize(*args, **kwargs)
            self._initialized = True

    def initialize(self, *args, **kwargs):
        """Called only once when the singleton instance is first created."""
        pass

    @classmethod
    def getInstance(cls):
        if cls not in cls._instances:
            cls()
        return cls._instances[cls]


class EventService(Singleton):
    """
    Dispatches events to subscribed observers. Backed by 'signalslot' signals,
    one signal per registered event key.
    """

    def initialize(self):
        self.signals = {}

    @staticmethod
    def _disconnectAll(signal):
        for slot in list(signal.slots):
            signal.disconnect(slot)

    def isRegistered(self, event):
        return event in self.signals

    def register(self, event):
        if self.isRegistered(event):
            return False
        self.signals[event] = Signal()
        return True

    def unregister(self, event):
        if not self.isRegistered(event):
            return False

        self._disconnectAll(self.signals.pop(event))
        return True

    def subscribe(self, event, observer):
        """
        Subscribe an observer to an event. Observers must accept **kwargs.
        """
        if not self.isRegistered(event):
            raise KeyError(f"You must register event '{event}' first.")

        signalObject = self.signals[event]
        if signalObject.is_connected(observer):
            return

        signalObject.connect(observer)

    def unsubscribe(self, event, observer):
        if not self.isRegistered(event):
            return

        signalObject = self.signals[event]
        if signalObject.is_connected(observer):
            signalObject.disconnect(observer)

    def trigger(self, event, **kwargs):
        signalObject = self.signals.get(event)
        if signalObject is None:
            return

        signalObject.emit(**kwargs)


class Event:
    """ Simple Event wrapper"""

    def __init__(self, key):
        self.key = key

        self.eventService = EventService.getInstance()

    def register(self):
        return self.eventService.register(self.key)

    def subscribe(self, observer):
        return self.eventService.subscribe(self.key, observer)

    def unsubscribe(self, observer):
        return self.eventService.unsubscribe(self.key, observer)

    def trigger(self, **kwargs):
        return self.eventService.trigger(self.key, **kwargs)


# Event pattern: RESTful + /[action] (create, update, get, delete, others...)
class FDAEvent:
    transferComplete = Event('/download/transfer/complete')


FDAEvent.transferComplete.register()

# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/config/errors.py
class ConfigurationError(RuntimeError):
    """A required dependency or setting is missing at process start. Fatal."""

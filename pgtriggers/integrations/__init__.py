# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI lifespan and dependencies.
"""

from pgtriggers.integrations.fastapi import (
    get_trigger_manager,
    trigger_lifespan,
    trigger_manager_dependency,
)

__all__ = [
    "get_trigger_manager",
    "trigger_lifespan",
    "trigger_manager_dependency",
]

# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.08
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/__init__.py

"""lsm - git submodule management."""

from lsm.core.analysis import AnalysisEngine
from lsm.core.manager import SubmoduleManager
from lsm.config.manager import ConfigManager

__all__ = ['AnalysisEngine', 'ConfigManager', 'SubmoduleManager']

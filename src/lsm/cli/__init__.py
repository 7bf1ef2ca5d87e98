# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.08
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/cli/__init__.py

"""Command Line Interface package for lsm."""

from .main import cli_main as main, app

__all__ = ['main', 'app']

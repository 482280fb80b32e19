#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""YouTube Lens backend: YouTube Data API proxy with key rotation and CII scoring."""

__version__ = "1.0.0"

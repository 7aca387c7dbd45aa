#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations


class PieceSpanError(ValueError):
    pass


class ConfigurationError(PieceSpanError):
    """Model, normalizer or options are missing or unusable."""


class IntegrityError(PieceSpanError):
    """A collaborator broke its contract (offsets, pieces, repeat markers)."""


class EncodingError(PieceSpanError):
    pass

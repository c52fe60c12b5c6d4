# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

"""
Exception hierarchy for the masking engine.

Configuration problems (bad pattern definitions, bad custom patterns) and a
corrupted mapping file are hard failures: swallowing them would let values
through unmasked or make masked values unrecoverable.
"""


class MaskingError(RuntimeError):
    """Base class for all masking engine failures."""


class PatternDefinitionError(MaskingError, ValueError):
    """A pattern definition document or entry could not be loaded."""


class CustomPatternError(MaskingError, ValueError):
    """An operator-supplied custom pattern is malformed."""


class MappingFileError(MaskingError):
    """A session mapping file exists but cannot be parsed."""

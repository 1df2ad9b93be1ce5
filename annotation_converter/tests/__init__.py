#!/usr/bin/env python3

"""
Test suite for the annotation converter.

Unit tests covering:
- Coordinate primitives and the annotation model builder
- GFF3/GTF and refFlat readers, including malformed input and error policies
- Structural validation and both writers
- Round trips, idempotence and the command-line interface
"""

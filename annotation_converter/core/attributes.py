#!/usr/bin/env python3

"""
Column 9 attribute codecs for the two GFF dialects.

GFF3 : key=value pairs separated by ';', values percent-encoded.
GTF  : key "value" pairs terminated by ';' (unquoted values are tolerated).
"""

import re
from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import unquote

GFF3 = 'gff3'
GTF = 'gtf'

_GTF_PAIR = re.compile(r'\s*([^\s;"]+)\s+(?:"([^"]*)"|([^;\s]+))\s*;?')
_GTF_LINE = re.compile(r'^\s*[^\s=;"]+\s+"')
_GTF_UNQUOTED_LINE = re.compile(r'^\s*[^\s=;"]+\s+[^\s=;"]+\s*(;|$)')

# Characters with reserved meaning in GFF3 column 9.
_GFF3_ESCAPES = str.maketrans({
    '%': '%25',
    ';': '%3B',
    '=': '%3D',
    '&': '%26',
    '\t': '%09',
    '\n': '%0A',
    '\r': '%0D',
})


def detect_dialect(attr_string: str) -> Optional[str]:
    """
    Guess the dialect of one attribute column.

    Returns 'gtf', 'gff3', or None when the column carries no attributes.
    """
    text = attr_string.strip()
    if not text or text == '.':
        return None
    if _GTF_LINE.match(text):
        return GTF
    if '=' in text:
        return GFF3
    if _GTF_UNQUOTED_LINE.match(text):
        return GTF
    return GFF3


def parse_gff3_attributes(attr_string: str) -> Dict[str, str]:
    """Parse GFF3 key=value; attribute string."""
    attributes: Dict[str, str] = {}
    if attr_string.strip() == '.':
        return attributes
    for part in attr_string.split(';'):
        part = part.strip()
        if '=' not in part:
            continue
        key, _, value = part.partition('=')
        key = unquote(key.strip())
        if key:
            attributes[key] = unquote(value.strip())
    return attributes


def parse_gtf_attributes(attr_string: str) -> Dict[str, str]:
    """
    Parse GTF 'key "value";' attribute string.

    Repeated keys (e.g. several ``tag`` entries) are joined with commas.
    """
    attributes: Dict[str, str] = {}
    if attr_string.strip() == '.':
        return attributes
    for match in _GTF_PAIR.finditer(attr_string):
        key = match.group(1)
        value = match.group(2) if match.group(2) is not None else match.group(3)
        if key in attributes:
            attributes[key] = f"{attributes[key]},{value}"
        else:
            attributes[key] = value
    return attributes


def parse_attributes(attr_string: str, dialect: str) -> Dict[str, str]:
    if dialect == GTF:
        return parse_gtf_attributes(attr_string)
    return parse_gff3_attributes(attr_string)


def format_gff3_attributes(pairs: Iterable[Tuple[str, str]]) -> str:
    text = ';'.join(f"{key.translate(_GFF3_ESCAPES)}={value.translate(_GFF3_ESCAPES)}"
                    for key, value in pairs)
    return text or '.'


def format_gtf_attributes(pairs: Iterable[Tuple[str, str]]) -> str:
    # A double quote cannot be represented inside a GTF value.
    text = ' '.join(f'{key} "{value.replace(chr(34), chr(39))}";' for key, value in pairs)
    return text or '.'


def format_attributes(pairs: Iterable[Tuple[str, str]], dialect: str) -> str:
    if dialect == GTF:
        return format_gtf_attributes(pairs)
    return format_gff3_attributes(pairs)

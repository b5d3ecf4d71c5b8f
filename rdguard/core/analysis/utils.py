"""Shared analysis utilities used by the command classifier."""

import re

_SPECIAL_CHARS = re.compile(r'[^a-zA-Z0-9\s]')
_BRACKETS = re.compile(r'[\[\](){}]')
_HEX_ESCAPE = re.compile(r'\\x[0-9a-fA-F]{2}')
_UNICODE_ESCAPE = re.compile(r'\\u[0-9a-fA-F]{4}')
_OCTAL_ESCAPE = re.compile(r'\\[0-7]{3}')
_CONCATENATION = re.compile(r'\+\s*["\'`]')


def obfuscation_score(text: str) -> float:
    """Score how obfuscated a code string looks, from 0.0 to 1.0.

    Weighted indicators:
    - Special character density above 30% (+0.3)
    - Bracket density above 20% (+0.2)
    - Hex escapes (\\x..) (+0.2)
    - Unicode escapes (\\u....) (+0.2)
    - Octal escapes (\\NNN) (+0.1)
    - More than 5 string concatenations (+0.2)
    """
    if not text:
        return 0.0
    score = 0.0
    length = len(text)

    if len(_SPECIAL_CHARS.findall(text)) / length > 0.3:
        score += 0.3
    if len(_BRACKETS.findall(text)) / length > 0.2:
        score += 0.2
    if _HEX_ESCAPE.search(text):
        score += 0.2
    if _UNICODE_ESCAPE.search(text):
        score += 0.2
    if _OCTAL_ESCAPE.search(text):
        score += 0.1
    if len(_CONCATENATION.findall(text)) > 5:
        score += 0.2

    return min(round(score, 2), 1.0)


__all__ = ['obfuscation_score']

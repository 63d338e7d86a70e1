"""
Pre-extraction of the patient's cedula (national ID) from recognized text.

The hint is only a corrective input for the structured extractor; it never
replaces a plausible ID returned by the model.
"""

import re

# List order is the priority: the first pattern that matches anywhere wins.
CEDULA_PATTERNS = [
    re.compile(r"\bpaciente\s*:?\s*(\d{6,10})(?!\d)", re.IGNORECASE),
    re.compile(r"\bidentificaci[oó]n\s*:?\s*(\d{6,10})(?!\d)", re.IGNORECASE),
    re.compile(r"\bc[eé]dula\s*:?\s*(\d{6,10})(?!\d)", re.IGNORECASE),
    re.compile(r"\bid\s*:?\s*(\d{6,10})(?!\d)", re.IGNORECASE),
]


def extract_cedula_hint(text: str | None) -> str | None:
    """
    Return the first label-anchored 6-10 digit ID found in `text`.

    Example:
        >>> extract_cedula_hint("Paciente: 21906101 Fabio Perez Edad: 64 Años")
        '21906101'
    """
    if not text:
        return None

    for pattern in CEDULA_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None

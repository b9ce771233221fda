"""
Slurm node list helpers.

Slurm reports node sets in its compressed hostlist form (``node[1-2,4-5]``).
The session only ever targets one node, so the launcher just needs the first
concrete name; the full expansion is kept for diagnostics.
"""

import re
from typing import List

NODE_RANGE_RE = re.compile(r"^(?P<prefix>[A-Za-z0-9_.-]*?)\[(?P<number>\d+)(?:[,-][^\]]*)?\](?P<suffix>.*)$")
PLAIN_NODE_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def extract_prefix_and_number(token: str) -> str:
    """Canonicalise a node token to a single node name.

    Examples:
        "node1"          -> "node1"
        "node[1-2,4-5]"  -> "node1"
        ""               -> ""
    """
    token = (token or "").strip()
    if not token:
        return ""
    if "[" not in token:
        return token if PLAIN_NODE_RE.match(token) else ""
    match = NODE_RANGE_RE.match(token)
    if not match or match.group("suffix"):
        return ""
    return f"{match.group('prefix')}{match.group('number')}"


def split_nodelist(nodelist: str) -> List[str]:
    """Split a hostlist on top-level commas, leaving bracket ranges intact."""
    parts: List[str] = []
    buf = ""
    depth = 0
    for ch in nodelist:
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            if buf:
                parts.append(buf)
            buf = ""
            continue
        buf += ch
    if buf:
        parts.append(buf)
    return parts


def expand_nodelist(nodelist: str) -> List[str]:
    """Expand a Slurm hostlist into concrete node names, keeping zero padding."""
    results: List[str] = []
    for part in split_nodelist((nodelist or "").strip()):
        if "[" not in part or "]" not in part:
            results.append(part)
            continue
        prefix, rest = part.split("[", 1)
        inside, suffix = rest.split("]", 1)
        for segment in inside.split(","):
            segment = segment.strip()
            if not segment:
                continue
            if "-" not in segment:
                results.append(prefix + segment + suffix)
                continue
            start_str, end_str = segment.split("-", 1)
            width = max(len(start_str), len(end_str))
            try:
                start, end = int(start_str), int(end_str)
            except ValueError:
                results.append(prefix + segment + suffix)
                continue
            step = 1 if end >= start else -1
            for value in range(start, end + step, step):
                results.append(prefix + str(value).zfill(width) + suffix)
    return results

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Union


def _parse_names_block(lines: List[str]) -> Dict[int, str]:
    names: Dict[int, str] = {}
    in_names = False
    for line in lines:
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue
        # "id: label"
        if ":" not in line:
            continue
        left, right = line.split(":", 1)
        left = left.strip()
        if not left.isdigit():
            continue
        names[int(left)] = right.strip().strip("'").strip('"')
    return names


def load_class_names(path: Union[str, Path]) -> Dict[int, str]:
    """
    Load an {id: label} mapping for the decoder.

    Two formats are accepted:

    - a metadata file with a `names:` block (as exported alongside YOLO models):

        names:
          0: lesion
          1: ulcer

    - a plain labels file with one label per line; the line index is the class id.

    Blank lines and `#` comments are ignored in both.
    """

    lines = []
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            lines.append(line)

    if "names:" in lines:
        return _parse_names_block(lines)
    return {i: label for i, label in enumerate(lines)}

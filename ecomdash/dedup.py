# dedup.py
# Row-level diffing of a new row set against what is already in a sheet.

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

Key = Tuple[str, ...]


def normalize_cell(v) -> str:
    """Stringify + trim so 45.0 / "45" / " 45 " compare equal."""
    if v is None:
        return ""
    if isinstance(v, bool):
        return str(v).upper()
    if isinstance(v, float):
        if v != v:  # NaN
            return ""
        if v.is_integer():
            return str(int(v))
    return str(v).strip()


def normalize_row(row: Sequence, width: Optional[int] = None) -> List[str]:
    out = [normalize_cell(v) for v in row]
    if width is not None and len(out) < width:
        # Sheets drops trailing empty cells
        out += [""] * (width - len(out))
    return out


def rows_equal(a: Sequence, b: Sequence) -> bool:
    width = max(len(a), len(b))
    return normalize_row(a, width) == normalize_row(b, width)


def row_key(row: Sequence, key_cols: Sequence[int]) -> Optional[Key]:
    """Key tuple for the row, or None when any key part is blank."""
    parts = []
    for c in key_cols:
        v = normalize_cell(row[c]) if c < len(row) else ""
        if v == "":
            return None
        parts.append(v)
    return tuple(parts)


def existing_keys(rows: Iterable[Sequence], key_cols: Sequence[int] = (0,)) -> Set[Key]:
    keys = set()
    for r in rows:
        k = row_key(r, key_cols)
        if k is not None:
            keys.add(k)
    return keys


def existing_ids(rows: Iterable[Sequence], col: int = 0) -> Set[str]:
    return {k[0] for k in existing_keys(rows, (col,))}


def first_match_map(rows: Iterable[Sequence], key_col: int) -> Tuple[Dict[str, Sequence], int]:
    """{key: first row with that key}, plus how many later duplicates were ignored."""
    out: Dict[str, Sequence] = {}
    duplicates = 0
    for r in rows:
        k = row_key(r, (key_col,))
        if k is None:
            continue
        if k[0] in out:
            duplicates += 1
            continue
        out[k[0]] = r
    return out, duplicates


@dataclass
class RowUpdate:
    row_number: int  # 1-based sheet row
    values: List


@dataclass
class SheetDiff:
    append: List[List] = field(default_factory=list)
    update: List[RowUpdate] = field(default_factory=list)
    skip: List[List] = field(default_factory=list)
    ignored: List[List] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "appended": len(self.append),
            "updated": len(self.update),
            "skipped": len(self.skip),
            "ignored": len(self.ignored),
        }


def diff_rows(
    new_rows: Iterable[Sequence],
    existing_rows: List[Sequence],
    key_cols: Sequence[int] = (0,),
    ignore_keys: Iterable[str] = (),
) -> SheetDiff:
    """
    Classify every new row against the existing sheet snapshot
    (existing_rows[0] is sheet row 1):

      skip   - key present, content identical after normalization
      update - key present, content differs (targets the existing row)
      append - key absent

    Rows with a blank key, or whose first key part is in ignore_keys, land in
    `ignored`. An exact repeat of a row already queued for append is skipped.
    When a key occurs more than once in the sheet the first occurrence wins.
    """
    ignore = {str(k) for k in ignore_keys}
    index: Dict[Key, Tuple[int, Sequence]] = {}
    for i, r in enumerate(existing_rows):
        k = row_key(r, key_cols)
        if k is not None and k not in index:
            index[k] = (i + 1, r)

    pending: Dict[Key, List[Sequence]] = {}
    diff = SheetDiff()
    for row in new_rows:
        row = list(row)
        k = row_key(row, key_cols)
        if k is None or k[0] in ignore:
            diff.ignored.append(row)
            continue

        hit = index.get(k)
        if hit is None:
            if any(rows_equal(row, p) for p in pending.get(k, [])):
                diff.skip.append(row)
                continue
            pending.setdefault(k, []).append(row)
            diff.append.append(row)
            continue

        row_number, existing = hit
        if rows_equal(row, existing):
            diff.skip.append(row)
        else:
            diff.update.append(RowUpdate(row_number=row_number, values=row))

    logging.info(
        f"diff: {len(diff.append)} to append, {len(diff.update)} to update, "
        f"{len(diff.skip)} unchanged, {len(diff.ignored)} ignored"
    )
    return diff

"""
Filesystem Tools
----------------
File discovery, disk usage, dedupe, move/copy/rename, zip and grep.

Every handler authorizes the paths it touches through the policy engine
before reading or changing anything. Relative paths resolve against the
context cwd (or the step's own cwd input).
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List
import hashlib
import os
import re
import shutil
import zipfile

from core.policy import authorize_paths, is_under
from core.types import ExecutionContext

from ..registry import ToolDescriptor, ToolRegistry

_UNITS = ["B", "kB", "MB", "GB", "TB", "PB"]


def format_bytes(size: int) -> str:
    """Human-readable size with decimal units, e.g. 1.34 MB."""
    if abs(size) < 1000:
        return f"{size} B"
    value = float(size)
    for unit in _UNITS[1:]:
        value /= 1000
        # Values that round to 1000 move up a unit
        if abs(value) < 999.5:
            break
    return f"{value:.3g} {unit}"


def _base(tool_input: Dict[str, Any], context: ExecutionContext, key: str = "cwd") -> Path:
    base = tool_input.get(key) or context.cwd
    path = Path(os.path.expanduser(base))
    if not path.is_absolute():
        path = Path(context.cwd) / path
    return path


def _resolve(path: str, context: ExecutionContext) -> Path:
    p = Path(os.path.expanduser(path))
    return p if p.is_absolute() else Path(context.cwd) / p


def _walk_files(root: Path, max_depth: int = None) -> List[Path]:
    """All regular files under root, optionally limited in depth (1 = root only)."""
    files = []
    root_depth = len(root.parts)
    for dirpath, dirnames, filenames in os.walk(root, onerror=lambda e: None):
        depth = len(Path(dirpath).parts) - root_depth + 1
        if max_depth is not None and depth >= max_depth:
            dirnames[:] = []
        for name in sorted(filenames):
            candidate = Path(dirpath) / name
            if candidate.is_file():
                files.append(candidate)
        dirnames.sort()
    return files


def _glob(base: Path, pattern: str) -> List[Path]:
    if os.path.isabs(pattern):
        anchor = Path(pattern).anchor
        return sorted(p for p in Path(anchor).glob(pattern[len(anchor):]) if p.is_file())
    return sorted(p for p in base.glob(pattern) if p.is_file())


def _hash_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def _sort_keep(files: List[Path], keep: str) -> List[Path]:
    """Order a duplicate group so the file to keep comes first."""
    if keep == "newest":
        return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)
    if keep == "smallest":
        return sorted(files, key=lambda p: p.stat().st_size)
    return list(files)


def _str_paths(paths: Iterable[Path]) -> List[str]:
    return [str(p) for p in paths]


# ===== Handlers =====

def find_pdfs(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    root = _base(tool_input, context, "root")
    authorize_paths([str(root)], context)
    files = [
        f for f in _walk_files(root, tool_input.get("maxDepth"))
        if f.suffix.lower() == ".pdf"
    ]
    return {"count": len(files), "files": _str_paths(files)}


def disk_report(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    root = _base(tool_input, context, "root")
    authorize_paths([str(root)], context)
    top_n = tool_input.get("topN", 15)

    total_bytes = 0
    sizes = []
    by_ext: Dict[str, Dict[str, int]] = {}

    files = _walk_files(root)
    for f in files:
        size = f.stat().st_size
        total_bytes += size
        sizes.append({"file": str(f), "bytes": size})
        ext = f.suffix.lower() or "<none>"
        entry = by_ext.setdefault(ext, {"count": 0, "bytes": 0})
        entry["count"] += 1
        entry["bytes"] += size

    largest = sorted(sizes, key=lambda x: x["bytes"], reverse=True)[:top_n]
    ext_rows = sorted(
        ({"ext": ext, **v} for ext, v in by_ext.items()),
        key=lambda x: x["bytes"],
        reverse=True,
    )

    return {
        "totalFiles": len(files),
        "totalBytes": total_bytes,
        "largest": largest,
        "byExt": ext_rows,
        "human": {
            "totalBytes": format_bytes(total_bytes),
            "largest": [{**x, "human": format_bytes(x["bytes"])} for x in largest],
            "topExtensions": [{**x, "human": format_bytes(x["bytes"])} for x in ext_rows[:10]],
        },
    }


def dedupe_files(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    root = _base(tool_input, context, "root")
    authorize_paths([str(root)], context)
    min_bytes = tool_input.get("minBytes", 1)
    keep = tool_input.get("keep", "first")

    by_hash: Dict[str, List[Path]] = {}
    for f in _walk_files(root):
        if f.stat().st_size < min_bytes:
            continue
        by_hash.setdefault(_hash_file(f), []).append(f)

    groups = [
        {"hash": digest, "files": _str_paths(_sort_keep(files, keep))}
        for digest, files in by_hash.items()
        if len(files) > 1
    ]

    deleted = []
    if tool_input.get("apply", False):
        for group in groups:
            for dupe in group["files"][1:]:
                authorize_paths([dupe], context)
                os.unlink(dupe)
                context.log(f"Deleted {dupe}")
                deleted.append(dupe)

    return {"groups": groups, "deleted": deleted}


def _transfer(tool_input: Dict[str, Any], context: ExecutionContext, move: bool) -> List[str]:
    files = _glob(_base(tool_input, context), tool_input["glob"])
    dest = _resolve(tool_input["dest"], context)
    authorize_paths(_str_paths(files) + [str(dest)], context)
    dest.mkdir(parents=True, exist_ok=True)

    done = []
    for f in files:
        target = dest / f.name
        if move:
            shutil.move(str(f), str(target))
        else:
            shutil.copy2(str(f), str(target))
        done.append(str(target))
    return done


def move_files(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    return {"moved": _transfer(tool_input, context, move=True)}


def copy_files(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    return {"copied": _transfer(tool_input, context, move=False)}


def rename_pattern(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    files = _glob(_base(tool_input, context), tool_input["glob"])
    authorize_paths(_str_paths(files), context)
    search, replace = tool_input["search"], tool_input["replace"]

    renamed = []
    for f in files:
        if tool_input.get("regex", False):
            new_name = re.sub(search, replace, f.name)
        else:
            new_name = f.name.replace(search, replace, 1)
        if new_name != f.name:
            target = f.with_name(new_name)
            authorize_paths([str(target)], context)
            f.rename(target)
            renamed.append({"from": str(f), "to": str(target)})
    return {"renamed": renamed}


def zip_files(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    files = _glob(_base(tool_input, context), tool_input["glob"])
    out_file = _resolve(tool_input["outFile"], context)
    authorize_paths(_str_paths(files) + [str(out_file)], context)
    out_file.parent.mkdir(parents=True, exist_ok=True)

    with zipfile.ZipFile(out_file, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for f in files:
            if f.resolve() == out_file.resolve():
                continue
            archive.write(f, arcname=f.name)
    return {"archive": str(out_file), "count": len(files)}


def unzip_archive(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    archive_path = _resolve(tool_input["archive"], context)
    dest = _resolve(tool_input["dest"], context)
    authorize_paths([str(archive_path), str(dest)], context)
    dest.mkdir(parents=True, exist_ok=True)

    with zipfile.ZipFile(archive_path) as archive:
        for member in archive.namelist():
            # Entries must stay inside dest
            if not is_under(str(dest / member), str(dest)):
                raise ValueError(f"Archive entry escapes destination: {member}")
            authorize_paths([str(dest / member)], context)
        archive.extractall(dest)
    return {"dest": str(dest)}


def grep_search(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    files = _glob(_base(tool_input, context), tool_input["glob"])
    authorize_paths(_str_paths(files), context)

    flags = 0
    for letter in tool_input.get("flags", "i"):
        flags |= {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}.get(letter, 0)
    pattern = tool_input["pattern"] if tool_input.get("regex", False) else re.escape(tool_input["pattern"])
    regex = re.compile(pattern, flags)
    max_matches = tool_input.get("maxMatches", 200)

    matches = []
    for f in files:
        try:
            content = f.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        for lineno, line in enumerate(content.splitlines(), start=1):
            if regex.search(line):
                matches.append({"file": str(f), "line": lineno, "text": line})
                if len(matches) >= max_matches:
                    return {"matches": matches}
    return {"matches": matches}


# ===== Schemas =====

_GLOB_INPUT = {
    "glob": {"type": "string", "minLength": 1},
    "cwd": {"type": "string", "nullable": True},
}

_STRING_LIST = {"type": "array", "items": {"type": "string"}}


def register_filesystem_tools(registry: ToolRegistry) -> None:
    registry.register(ToolDescriptor(
        name="find_pdfs",
        description="Find all PDF files under a root (case-insensitive).",
        handler=find_pdfs,
        capabilities=["files.read"],
        input_schema={
            "type": "object",
            "properties": {
                "root": {"type": "string"},
                "maxDepth": {"type": "integer", "minimum": 1, "nullable": True},
            },
            "additionalProperties": False,
        },
        output_schema={
            "type": "object",
            "properties": {"count": {"type": "integer"}, "files": _STRING_LIST},
            "required": ["count", "files"],
        },
    ))

    registry.register(ToolDescriptor(
        name="disk_report",
        description="Summarize disk usage: totals, largest files, breakdown by extension.",
        handler=disk_report,
        capabilities=["files.read"],
        input_schema={
            "type": "object",
            "properties": {
                "root": {"type": "string"},
                "topN": {"type": "integer", "minimum": 1, "maximum": 100},
            },
            "additionalProperties": False,
        },
        output_schema=DISK_REPORT_OUTPUT_SCHEMA,
    ))

    registry.register(ToolDescriptor(
        name="dedupe_files",
        description="Detect duplicate files by SHA-256 hash; delete them only with apply=true.",
        handler=dedupe_files,
        mutate=True,
        capabilities=["files.read", "files.delete"],
        input_schema={
            "type": "object",
            "properties": {
                "root": {"type": "string"},
                "minBytes": {"type": "integer", "minimum": 1},
                "apply": {"type": "boolean"},
                "keep": {"type": "string", "enum": ["first", "newest", "smallest"]},
            },
            "additionalProperties": False,
        },
        output_schema={
            "type": "object",
            "properties": {
                "groups": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"hash": {"type": "string"}, "files": _STRING_LIST},
                    },
                },
                "deleted": _STRING_LIST,
            },
            "required": ["groups", "deleted"],
        },
    ))

    registry.register(ToolDescriptor(
        name="move_files",
        description="Move matched files to a destination directory.",
        handler=move_files,
        mutate=True,
        capabilities=["files.read", "files.write", "files.delete"],
        input_schema={
            "type": "object",
            "properties": {**_GLOB_INPUT, "dest": {"type": "string"}},
            "required": ["glob", "dest"],
            "additionalProperties": False,
        },
        output_schema={"type": "object", "properties": {"moved": _STRING_LIST}, "required": ["moved"]},
    ))

    registry.register(ToolDescriptor(
        name="copy_files",
        description="Copy matched files to a destination directory.",
        handler=copy_files,
        mutate=True,
        capabilities=["files.read", "files.write"],
        input_schema={
            "type": "object",
            "properties": {**_GLOB_INPUT, "dest": {"type": "string"}},
            "required": ["glob", "dest"],
            "additionalProperties": False,
        },
        output_schema={"type": "object", "properties": {"copied": _STRING_LIST}, "required": ["copied"]},
    ))

    registry.register(ToolDescriptor(
        name="rename_pattern",
        description="Rename files by replacing a substring or regex.",
        handler=rename_pattern,
        mutate=True,
        capabilities=["files.write"],
        input_schema={
            "type": "object",
            "properties": {
                **_GLOB_INPUT,
                "search": {"type": "string", "minLength": 1},
                "replace": {"type": "string"},
                "regex": {"type": "boolean"},
            },
            "required": ["glob", "search", "replace"],
            "additionalProperties": False,
        },
        output_schema={
            "type": "object",
            "properties": {
                "renamed": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"from": {"type": "string"}, "to": {"type": "string"}},
                        "required": ["from", "to"],
                    },
                },
            },
            "required": ["renamed"],
        },
    ))

    registry.register(ToolDescriptor(
        name="zip_files",
        description="Zip matched files into an archive.",
        handler=zip_files,
        mutate=True,
        capabilities=["archive.manage", "files.read", "files.write"],
        input_schema={
            "type": "object",
            "properties": {**_GLOB_INPUT, "outFile": {"type": "string"}},
            "required": ["glob", "outFile"],
            "additionalProperties": False,
        },
        output_schema={
            "type": "object",
            "properties": {"archive": {"type": "string"}, "count": {"type": "integer"}},
            "required": ["archive", "count"],
        },
    ))

    registry.register(ToolDescriptor(
        name="unzip_archive",
        description="Unzip an archive into a destination directory.",
        handler=unzip_archive,
        mutate=True,
        capabilities=["archive.manage", "files.write"],
        input_schema={
            "type": "object",
            "properties": {"archive": {"type": "string"}, "dest": {"type": "string"}},
            "required": ["archive", "dest"],
            "additionalProperties": False,
        },
        output_schema={"type": "object", "properties": {"dest": {"type": "string"}}, "required": ["dest"]},
    ))

    registry.register(ToolDescriptor(
        name="grep_search",
        description="Search text files for a pattern (regex optional).",
        handler=grep_search,
        capabilities=["search.read", "files.read"],
        input_schema={
            "type": "object",
            "properties": {
                **_GLOB_INPUT,
                "pattern": {"type": "string", "minLength": 1},
                "regex": {"type": "boolean"},
                "flags": {"type": "string", "pattern": "^[ims]*$"},
                "maxMatches": {"type": "integer", "minimum": 1},
            },
            "required": ["glob", "pattern"],
            "additionalProperties": False,
        },
        output_schema={
            "type": "object",
            "properties": {
                "matches": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "file": {"type": "string"},
                            "line": {"type": "integer"},
                            "text": {"type": "string"},
                        },
                    },
                },
            },
            "required": ["matches"],
        },
    ))


DISK_REPORT_OUTPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "totalFiles": {"type": "integer"},
        "totalBytes": {"type": "integer"},
        "largest": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"file": {"type": "string"}, "bytes": {"type": "integer"}},
            },
        },
        "byExt": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "ext": {"type": "string"},
                    "count": {"type": "integer"},
                    "bytes": {"type": "integer"},
                },
            },
        },
        "human": {"type": "object"},
    },
    "required": ["totalFiles", "totalBytes", "largest", "byExt", "human"],
}

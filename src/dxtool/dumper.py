"""Dump class files in a human-oriented format."""

from __future__ import annotations

import sys
from typing import Iterator, List, Sequence

from .bytecode import decode_instructions, format_instructions
from .class_inputs import iter_class_inputs
from .classfile import ClassFile, ClassFileError, Member, format_access_flags
from .cli_args import ToolArgumentParser, positive_int
from .dumps import DumpFacility

DEFAULT_WIDTH = 16


def hex_dump(data: bytes, width: int = DEFAULT_WIDTH) -> Iterator[str]:
    """Yield ``offset: bytes`` lines covering ``data``."""

    for start in range(0, len(data), width):
        chunk = data[start : start + width]
        yield f"{start:08x}: {' '.join(f'{value:02x}' for value in chunk)}"


def _member_lines(member: Member, kind: str, classfile: ClassFile, *, code: bool) -> List[str]:
    flags = format_access_flags(member.access_flags, kind)
    lines = [f"  {member.name}:{member.descriptor}" + (f" ({flags})" if flags else "")]
    for annotation in member.annotations:
        lines.append(f"    @{annotation}")
    for attribute in member.attributes:
        if attribute.name != "Code":
            lines.append(f"    attribute {attribute.name} ({len(attribute.data)} bytes)")
    if code and member.code is not None:
        body = member.code
        lines.append(
            f"    code: max_stack={body.max_stack} max_locals={body.max_locals} "
            f"length={len(body.code)}"
        )
        for line in format_instructions(decode_instructions(body.code), classfile.pool):
            lines.append(f"      {line}")
        for handler in body.exception_table:
            catch = handler.catch_type or "<any>"
            lines.append(
                f"      catch {catch} [{handler.start_pc:04x}..{handler.end_pc:04x}) "
                f"-> {handler.handler_pc:04x}"
            )
    return lines


def dump_class(classfile: ClassFile, *, code: bool = True) -> List[str]:
    """Return the listing lines for ``classfile``."""

    lines = [
        f"class {classfile.name}",
        f"  version: {classfile.major_version}.{classfile.minor_version}",
        f"  access_flags: {format_access_flags(classfile.access_flags, 'class')}",
        f"  super: {classfile.super_name or '<none>'}",
    ]
    if classfile.interfaces:
        lines.append(f"  interfaces: {', '.join(classfile.interfaces)}")
    for annotation in classfile.annotations:
        lines.append(f"  @{annotation}")

    lines.append(f"constant_pool: {len(classfile.pool) - 1}")
    for index, _ in classfile.pool:
        lines.append(f"  {index:04x}: {classfile.pool.describe(index)}")

    lines.append(f"fields: {len(classfile.fields)}")
    for member in classfile.fields:
        lines.extend(_member_lines(member, "field", classfile, code=code))
    lines.append(f"methods: {len(classfile.methods)}")
    for member in classfile.methods:
        lines.extend(_member_lines(member, "method", classfile, code=code))
    for attribute in classfile.attributes:
        lines.append(f"attribute {attribute.name} ({len(attribute.data)} bytes)")
    return lines


def parse_args(argv: Sequence[str]):
    parser = ToolArgumentParser(prog="dx --dump", description=__doc__)
    parser.add_argument("--bytes", action="store_true", help="Hex dump the raw file first")
    parser.add_argument("--width", type=positive_int, default=DEFAULT_WIDTH)
    parser.add_argument("--no-code", action="store_true", help="Omit method bodies")
    parser.add_argument("inputs", nargs="*")
    args = parser.parse_args(list(argv))
    if not args.inputs:
        parser.error("no input files specified")
    return args


def main(argv: Sequence[str] | None = None, dumps: DumpFacility | None = None) -> int:
    """Entry point for ``dx --dump``."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    failures = 0
    for item in iter_class_inputs(args.inputs):
        print(f"reading {item.name}...")
        if args.bytes:
            for line in hex_dump(item.data, args.width):
                print(line)
        try:
            lines = dump_class(ClassFile.parse(item.data), code=not args.no_code)
        except ClassFileError as exc:
            print(f"\ntrouble parsing \"{item.name}\":\n{exc}", file=sys.stderr)
            failures += 1
            continue
        print("\n".join(lines))
    return 1 if failures else 0


__all__ = ["dump_class", "hex_dump", "main"]


if __name__ == "__main__":  # pragma: no cover - exercised via python -m
    raise SystemExit(main())

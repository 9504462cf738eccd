"""Find declarations of and references to a field or method."""

from __future__ import annotations

import sys
from typing import Iterable, List, Sequence

from .bytecode import decode_instructions
from .class_inputs import iter_class_inputs
from .classfile import ClassFile, ClassFileError
from .cli_args import ToolArgumentParser
from .dumps import DumpFacility

# get/put field and static, plus every invoke that names a member ref.
MEMBER_OPCODES = frozenset({0xB2, 0xB3, 0xB4, 0xB5, 0xB6, 0xB7, 0xB8, 0xB9})


def find_declarations(classfile: ClassFile, declaring_type: str, member: str) -> List[str]:
    if classfile.descriptor != declaring_type:
        return []
    lines = [
        f"{classfile.descriptor}: field {field.name}:{field.descriptor}"
        for field in classfile.fields
        if field.name == member
    ]
    lines.extend(
        f"{classfile.descriptor}: method {method.name}{method.descriptor}"
        for method in classfile.methods
        if method.name == member
    )
    return lines


def find_references(classfile: ClassFile, declaring_type: str, member: str) -> List[str]:
    """Return one line per instruction in ``classfile`` touching the member."""

    targets = {
        index
        for index, ref in classfile.pool.iter_member_refs()
        if ref.owner_descriptor == declaring_type and ref.name == member
    }
    if not targets:
        return []
    lines: List[str] = []
    for method in classfile.methods:
        if method.code is None:
            continue
        for insn in decode_instructions(method.code.code):
            if insn.opcode in MEMBER_OPCODES and insn.constant_index in targets:
                ref = classfile.pool.member_ref(insn.constant_index)
                lines.append(
                    f"{classfile.descriptor}.{method.name}{method.descriptor} "
                    f"@{insn.offset:04x}: {insn.mnemonic} {ref}"
                )
    return lines


def find_usages(classes: Iterable[ClassFile], declaring_type: str, member: str) -> List[str]:
    lines: List[str] = []
    for classfile in classes:
        lines.extend(find_declarations(classfile, declaring_type, member))
        lines.extend(find_references(classfile, declaring_type, member))
    return lines


def parse_args(argv: Sequence[str]):
    parser = ToolArgumentParser(prog="dx --find-usages", description=__doc__)
    parser.add_argument("input")
    parser.add_argument("declaring_type")
    parser.add_argument("member")
    args = parser.parse_args(list(argv))
    if not (args.declaring_type.startswith(("L", "[")) and args.declaring_type.endswith(";")):
        parser.error(
            f"declaring type must be in internal form, like Ljava/lang/Object; "
            f"(got {args.declaring_type!r})"
        )
    return args


def main(argv: Sequence[str] | None = None, dumps: DumpFacility | None = None) -> int:
    """Entry point for ``dx --find-usages``."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    failures = 0
    for item in iter_class_inputs([args.input]):
        try:
            classfile = ClassFile.parse(item.data)
            lines = find_declarations(classfile, args.declaring_type, args.member)
            lines += find_references(classfile, args.declaring_type, args.member)
        except ClassFileError as exc:
            print(f"\ntrouble parsing \"{item.name}\":\n{exc}", file=sys.stderr)
            failures += 1
            continue
        for line in lines:
            print(line)
    return 1 if failures else 0


__all__ = ["find_declarations", "find_references", "find_usages", "main"]


if __name__ == "__main__":  # pragma: no cover - exercised via python -m
    raise SystemExit(main())

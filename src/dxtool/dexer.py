"""Build the dex identifier sections for a set of class files."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, TextIO, Tuple

from .class_inputs import iter_class_inputs
from .classfile import (
    CONSTANT_STRING,
    ClassFile,
    ClassFileError,
    class_descriptor,
    parse_method_descriptor,
)
from .cli_args import ToolArgumentParser
from .dumps import DumpCategory, DumpFacility

LOGGER = logging.getLogger(__name__)

# Field and method indices are 16-bit in dex instructions.
MAX_MEMBER_IDS = 0x10000


def utf16_key(text: str) -> bytes:
    """Sort key matching dex string order (UTF-16 code units)."""

    return text.encode("utf-16-be", "surrogatepass")


def shorty_char(descriptor: str) -> str:
    return "L" if descriptor[0] in "L[" else descriptor[0]


@dataclass(frozen=True)
class ProtoId:
    return_type: str
    parameters: Tuple[str, ...]

    @classmethod
    def from_descriptor(cls, descriptor: str) -> "ProtoId":
        parameters, return_type = parse_method_descriptor(descriptor)
        return cls(return_type, parameters)

    @property
    def shorty(self) -> str:
        return shorty_char(self.return_type) + "".join(
            shorty_char(param) for param in self.parameters
        )

    @property
    def descriptor(self) -> str:
        return f"({''.join(self.parameters)}){self.return_type}"

    def sort_key(self) -> tuple:
        return (utf16_key(self.return_type), tuple(utf16_key(p) for p in self.parameters))


@dataclass(frozen=True)
class FieldId:
    defining_class: str
    name: str
    type: str

    def sort_key(self) -> tuple:
        return (utf16_key(self.defining_class), utf16_key(self.name), utf16_key(self.type))

    def __str__(self) -> str:
        return f"{self.defining_class}.{self.name}:{self.type}"


@dataclass(frozen=True)
class MethodId:
    defining_class: str
    name: str
    proto: ProtoId

    def sort_key(self) -> tuple:
        return (utf16_key(self.defining_class), utf16_key(self.name), self.proto.sort_key())

    def __str__(self) -> str:
        return f"{self.defining_class}.{self.name}:{self.proto.descriptor}"


@dataclass(frozen=True)
class DexIdTables:
    """Identifier sections in the order a dex file stores them."""

    strings: Tuple[str, ...]
    types: Tuple[str, ...]
    protos: Tuple[ProtoId, ...]
    fields: Tuple[FieldId, ...]
    methods: Tuple[MethodId, ...]
    class_defs: Tuple[str, ...]

    def section_counts(self) -> Dict[str, int]:
        return {
            "string_ids": len(self.strings),
            "type_ids": len(self.types),
            "proto_ids": len(self.protos),
            "field_ids": len(self.fields),
            "method_ids": len(self.methods),
            "class_defs": len(self.class_defs),
        }


class IdTableBuilder:
    """Accumulates identifiers from parsed classes."""

    def __init__(self) -> None:
        self._strings: set[str] = set()
        self._types: set[str] = set()
        self._protos: set[ProtoId] = set()
        self._fields: set[FieldId] = set()
        self._methods: set[MethodId] = set()
        self._class_defs: Dict[str, ClassFile] = {}

    def has_class(self, descriptor: str) -> bool:
        return descriptor in self._class_defs

    def add_class(self, classfile: ClassFile) -> None:
        """Record ``classfile`` and every identifier it declares or references.

        Descriptors are decoded before anything is recorded, so a class with a
        malformed descriptor leaves the builder untouched.
        """

        descriptor = classfile.descriptor
        fields = [FieldId(descriptor, m.name, m.descriptor) for m in classfile.fields]
        methods = [
            MethodId(descriptor, m.name, ProtoId.from_descriptor(m.descriptor))
            for m in classfile.methods
        ]
        for _, ref in classfile.pool.iter_member_refs():
            if ref.is_field:
                fields.append(FieldId(ref.owner_descriptor, ref.name, ref.descriptor))
            else:
                methods.append(
                    MethodId(ref.owner_descriptor, ref.name, ProtoId.from_descriptor(ref.descriptor))
                )
        strings = []
        for _, entry in classfile.pool:
            if entry.tag == CONSTANT_STRING:
                (string_index,) = entry.value  # type: ignore[misc]
                strings.append(classfile.pool.utf8(string_index))

        self._class_defs[descriptor] = classfile
        self._add_type(descriptor)
        if classfile.super_name is not None:
            self._add_type(class_descriptor(classfile.super_name))
        for interface in classfile.interfaces:
            self._add_type(class_descriptor(interface))
        for field_id in fields:
            self.add_field(field_id)
        for method_id in methods:
            self.add_method(method_id)
        self._strings.update(strings)

    def add_field(self, field_id: FieldId) -> None:
        self._fields.add(field_id)
        self._add_type(field_id.defining_class)
        self._add_type(field_id.type)
        self._strings.add(field_id.name)

    def add_method(self, method_id: MethodId) -> None:
        self._methods.add(method_id)
        self._add_type(method_id.defining_class)
        self._strings.add(method_id.name)
        self._add_proto(method_id.proto)

    def _add_proto(self, proto: ProtoId) -> None:
        self._protos.add(proto)
        self._strings.add(proto.shorty)
        self._add_type(proto.return_type)
        for param in proto.parameters:
            self._add_type(param)

    def _add_type(self, descriptor: str) -> None:
        self._types.add(descriptor)
        self._strings.add(descriptor)

    def build(self) -> DexIdTables:
        return DexIdTables(
            strings=tuple(sorted(self._strings, key=utf16_key)),
            types=tuple(sorted(self._types, key=utf16_key)),
            protos=tuple(sorted(self._protos, key=ProtoId.sort_key)),
            fields=tuple(sorted(self._fields, key=FieldId.sort_key)),
            methods=tuple(sorted(self._methods, key=MethodId.sort_key)),
            class_defs=tuple(sorted(self._class_defs, key=utf16_key)),
        )


def build_id_tables(classes: Iterable[ClassFile]) -> DexIdTables:
    """Return the identifier sections covering ``classes``."""

    builder = IdTableBuilder()
    for classfile in classes:
        builder.add_class(classfile)
    return builder.build()


def write_member_ids(sink: TextIO, members: Sequence[FieldId | MethodId]) -> None:
    for index, member in enumerate(members):
        sink.write(f"{index:04x}: {member}\n")


def write_id_listing(sink: TextIO, tables: DexIdTables) -> None:
    """Write every identifier section in a human-readable form."""

    sections: List[Tuple[str, Sequence[object]]] = [
        ("string_ids", [repr(text) for text in tables.strings]),
        ("type_ids", tables.types),
        ("proto_ids", [f"{proto.shorty} {proto.descriptor}" for proto in tables.protos]),
        ("field_ids", tables.fields),
        ("method_ids", tables.methods),
        ("class_defs", tables.class_defs),
    ]
    for title, items in sections:
        sink.write(f"{title}: {len(items)}\n")
        for index, item in enumerate(items):
            sink.write(f"  {index:04x}: {item}\n")


def is_core_class(classfile: ClassFile) -> bool:
    return classfile.name.startswith(("java/", "javax/"))


def parse_args(argv: Sequence[str]):
    parser = ToolArgumentParser(prog="dx --dex", description=__doc__)
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--statistics", action="store_true")
    parser.add_argument("--core-library", action="store_true")
    parser.add_argument("--dump-to", type=Path)
    parser.add_argument("inputs", nargs="*")
    args = parser.parse_args(list(argv))
    if not args.inputs:
        parser.error("no input files specified")
    return args


def main(argv: Sequence[str] | None = None, dumps: DumpFacility | None = None) -> int:
    """Entry point for ``dx --dex``."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    facility = dumps if dumps is not None else DumpFacility.from_environ()

    builder = IdTableBuilder()
    errors = 0
    for item in iter_class_inputs(args.inputs):
        if args.verbose:
            print(f"processing {item.name}...")
        try:
            classfile = ClassFile.parse(item.data)
        except ClassFileError as exc:
            print(f"\ntrouble processing \"{item.name}\":\n{exc}", file=sys.stderr)
            errors += 1
            continue
        if is_core_class(classfile) and not args.core_library:
            print(
                f"\ntrouble processing \"{item.name}\":\n"
                "Ill-advised or mistaken usage of a core class (java.* or javax.*)\n"
                "when not building a core library. Pass --core-library if this is\n"
                "really what you intend.",
                file=sys.stderr,
            )
            errors += 1
            continue
        if builder.has_class(classfile.descriptor):
            print(
                f"\ntrouble processing \"{item.name}\":\nclass {classfile.descriptor} already added",
                file=sys.stderr,
            )
            errors += 1
            continue
        try:
            builder.add_class(classfile)
        except ClassFileError as exc:
            print(f"\ntrouble processing \"{item.name}\":\n{exc}", file=sys.stderr)
            errors += 1

    tables = builder.build()
    LOGGER.info("built id tables: %s", tables.section_counts())

    with facility.dump_writer(DumpCategory.METHOD_IDS) as sink:
        if sink is not None:
            write_member_ids(sink, tables.methods)
    with facility.dump_writer(DumpCategory.FIELD_IDS) as sink:
        if sink is not None:
            write_member_ids(sink, tables.fields)

    if args.dump_to is not None:
        with args.dump_to.open("w", encoding="utf-8") as listing:
            write_id_listing(listing, tables)

    if args.statistics:
        for name, count in tables.section_counts().items():
            print(f"{name}: {count}")

    for label, members in (("method", tables.methods), ("field", tables.fields)):
        if len(members) > MAX_MEMBER_IDS:
            print(
                f"trouble writing output: Too many {label} references: "
                f"{len(members)}; max is {MAX_MEMBER_IDS}.",
                file=sys.stderr,
            )
            return 2

    return 1 if errors else 0


__all__ = [
    "DexIdTables",
    "FieldId",
    "IdTableBuilder",
    "MAX_MEMBER_IDS",
    "MethodId",
    "ProtoId",
    "build_id_tables",
    "main",
    "write_id_listing",
    "write_member_ids",
]


if __name__ == "__main__":  # pragma: no cover - exercised via python -m
    raise SystemExit(main())

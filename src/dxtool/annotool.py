"""Find classes, methods or packages carrying a given annotation."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Sequence

from .class_inputs import iter_class_inputs
from .classfile import ClassFile, ClassFileError, java_name_to_descriptor
from .cli_args import ToolArgumentParser
from .dumps import DumpFacility

ELEMENT_TYPES = ("type", "field", "method", "constructor", "package")
PRINT_TYPES = ("class", "innerclass", "method", "package")

CONSTRUCTOR_NAMES = frozenset({"<init>", "<clinit>"})


def _type_set(text: str, allowed: Sequence[str], option: str) -> FrozenSet[str]:
    values = frozenset(part.strip().lower() for part in text.split(",") if part.strip())
    unknown = sorted(values - set(allowed))
    if unknown or not values:
        choices = ", ".join(allowed)
        raise ValueError(f"invalid {option} value {text!r} (choose from {choices})")
    return values


@dataclass(frozen=True)
class AnnotationQuery:
    """What to look for and what to report."""

    annotation: str
    elements: FrozenSet[str] = frozenset({"type"})
    prints: FrozenSet[str] = frozenset({"class"})

    @property
    def descriptor(self) -> str:
        return java_name_to_descriptor(self.annotation)


def _matches(classfile: ClassFile, query: AnnotationQuery) -> List[str]:
    """Return the method names (or ``""`` for the class itself) that match."""

    wanted = query.descriptor
    hits: List[str] = []
    if classfile.is_package_info:
        if "package" in query.elements and wanted in classfile.annotations:
            hits.append("")
        return hits
    if "type" in query.elements and wanted in classfile.annotations:
        hits.append("")
    if "field" in query.elements and any(
        wanted in member.annotations for member in classfile.fields
    ):
        if "" not in hits:
            hits.append("")
    for member in classfile.methods:
        is_constructor = member.name in CONSTRUCTOR_NAMES
        element = "constructor" if is_constructor else "method"
        if element in query.elements and wanted in member.annotations:
            hits.append(member.name)
    return hits


def find_annotated(classes: Iterable[ClassFile], query: AnnotationQuery) -> List[str]:
    """Return report lines for ``classes`` according to ``query``."""

    lines: List[str] = []
    seen_packages: set[str] = set()
    for classfile in classes:
        hits = _matches(classfile, query)
        if not hits:
            continue
        if "package" in query.prints:
            package = classfile.package_name
            if package not in seen_packages:
                seen_packages.add(package)
                lines.append(package)
        if classfile.is_package_info:
            continue
        is_inner = "$" in classfile.name
        if ("class" in query.prints and not is_inner) or (
            "innerclass" in query.prints and is_inner
        ):
            lines.append(classfile.java_name)
        if "method" in query.prints:
            for name in hits:
                if name:
                    lines.append(f"{classfile.java_name}.{name}")
    return lines


def parse_args(argv: Sequence[str]):
    parser = ToolArgumentParser(prog="dx --annotool", description=__doc__)
    parser.add_argument("--annotation", required=True)
    parser.add_argument("--element", default="type")
    parser.add_argument("--print", dest="print_types", default="class")
    parser.add_argument("inputs", nargs="*")
    args = parser.parse_args(list(argv))
    if not args.inputs:
        parser.error("no input files specified")
    try:
        args.query = AnnotationQuery(
            annotation=args.annotation,
            elements=_type_set(args.element, ELEMENT_TYPES, "--element"),
            prints=_type_set(args.print_types, PRINT_TYPES, "--print"),
        )
    except ValueError as exc:
        parser.error(str(exc))
    return args


def main(argv: Sequence[str] | None = None, dumps: DumpFacility | None = None) -> int:
    """Entry point for ``dx --annotool``."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    classes: List[ClassFile] = []
    failures = 0
    for item in iter_class_inputs(args.inputs):
        try:
            classes.append(ClassFile.parse(item.data))
        except ClassFileError as exc:
            print(f"\ntrouble parsing \"{item.name}\":\n{exc}", file=sys.stderr)
            failures += 1
    for line in find_annotated(classes, args.query):
        print(line)
    return 1 if failures else 0


__all__ = ["AnnotationQuery", "ELEMENT_TYPES", "PRINT_TYPES", "find_annotated", "main"]


if __name__ == "__main__":  # pragma: no cover - exercised via python -m
    raise SystemExit(main())

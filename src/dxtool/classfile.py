"""Reader for JVM class files."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

MAGIC = 0xCAFEBABE

CONSTANT_UTF8 = 1
CONSTANT_INTEGER = 3
CONSTANT_FLOAT = 4
CONSTANT_LONG = 5
CONSTANT_DOUBLE = 6
CONSTANT_CLASS = 7
CONSTANT_STRING = 8
CONSTANT_FIELDREF = 9
CONSTANT_METHODREF = 10
CONSTANT_INTERFACE_METHODREF = 11
CONSTANT_NAME_AND_TYPE = 12
CONSTANT_METHOD_HANDLE = 15
CONSTANT_METHOD_TYPE = 16
CONSTANT_DYNAMIC = 17
CONSTANT_INVOKE_DYNAMIC = 18
CONSTANT_MODULE = 19
CONSTANT_PACKAGE = 20

CONSTANT_NAMES: Dict[int, str] = {
    CONSTANT_UTF8: "utf8",
    CONSTANT_INTEGER: "int",
    CONSTANT_FLOAT: "float",
    CONSTANT_LONG: "long",
    CONSTANT_DOUBLE: "double",
    CONSTANT_CLASS: "type",
    CONSTANT_STRING: "string",
    CONSTANT_FIELDREF: "field",
    CONSTANT_METHODREF: "method",
    CONSTANT_INTERFACE_METHODREF: "ifaceMethod",
    CONSTANT_NAME_AND_TYPE: "nat",
    CONSTANT_METHOD_HANDLE: "method-handle",
    CONSTANT_METHOD_TYPE: "method-type",
    CONSTANT_DYNAMIC: "dynamic",
    CONSTANT_INVOKE_DYNAMIC: "invoke-dynamic",
    CONSTANT_MODULE: "module",
    CONSTANT_PACKAGE: "package",
}

MEMBER_REF_TAGS = frozenset(
    {CONSTANT_FIELDREF, CONSTANT_METHODREF, CONSTANT_INTERFACE_METHODREF}
)

ACC_PUBLIC = 0x0001
ACC_PRIVATE = 0x0002
ACC_PROTECTED = 0x0004
ACC_STATIC = 0x0008
ACC_FINAL = 0x0010
ACC_INTERFACE = 0x0200
ACC_ABSTRACT = 0x0400
ACC_ANNOTATION = 0x2000

_CLASS_FLAGS: Tuple[Tuple[int, str], ...] = (
    (0x0001, "public"),
    (0x0010, "final"),
    (0x0020, "super"),
    (0x0200, "interface"),
    (0x0400, "abstract"),
    (0x1000, "synthetic"),
    (0x2000, "annotation"),
    (0x4000, "enum"),
    (0x8000, "module"),
)

_FIELD_FLAGS: Tuple[Tuple[int, str], ...] = (
    (0x0001, "public"),
    (0x0002, "private"),
    (0x0004, "protected"),
    (0x0008, "static"),
    (0x0010, "final"),
    (0x0040, "volatile"),
    (0x0080, "transient"),
    (0x1000, "synthetic"),
    (0x4000, "enum"),
)

_METHOD_FLAGS: Tuple[Tuple[int, str], ...] = (
    (0x0001, "public"),
    (0x0002, "private"),
    (0x0004, "protected"),
    (0x0008, "static"),
    (0x0010, "final"),
    (0x0020, "synchronized"),
    (0x0040, "bridge"),
    (0x0080, "varargs"),
    (0x0100, "native"),
    (0x0400, "abstract"),
    (0x0800, "strictfp"),
    (0x1000, "synthetic"),
)

_FLAG_TABLES = {"class": _CLASS_FLAGS, "field": _FIELD_FLAGS, "method": _METHOD_FLAGS}

ANNOTATION_ATTRIBUTES = ("RuntimeVisibleAnnotations", "RuntimeInvisibleAnnotations")


class ClassFileError(ValueError):
    """Raised when bytes cannot be parsed as a class file."""


def format_access_flags(flags: int, kind: str) -> str:
    """Return a ``|``-separated description of ``flags`` for ``kind``."""

    names = [name for mask, name in _FLAG_TABLES[kind] if flags & mask]
    return "|".join(names)


def decode_modified_utf8(raw: bytes) -> str:
    """Decode the modified UTF-8 used by ``CONSTANT_Utf8`` entries."""

    try:
        text = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", errors="surrogatepass")
    except UnicodeDecodeError as exc:
        raise ClassFileError(f"invalid modified UTF-8 string: {exc}") from exc
    if any("\ud800" <= char <= "\udfff" for char in text):
        # Supplementary characters arrive as encoded surrogate pairs.
        text = text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "surrogatepass")
    return text


class _Reader:
    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = data
        self.offset = offset

    def take(self, count: int) -> bytes:
        end = self.offset + count
        if count < 0 or end > len(self._data):
            raise ClassFileError(
                f"truncated class file: need {count} byte(s) at offset {self.offset:#x}"
            )
        chunk = self._data[self.offset : end]
        self.offset = end
        return chunk

    def u1(self) -> int:
        return self.take(1)[0]

    def u2(self) -> int:
        return int.from_bytes(self.take(2), "big")

    def u4(self) -> int:
        return int.from_bytes(self.take(4), "big")

    def at_end(self) -> bool:
        return self.offset == len(self._data)


@dataclass(frozen=True)
class Constant:
    """Single constant pool entry.

    ``value`` holds the decoded literal for utf8/int/float/long/double
    entries and a tuple of pool indices for the structured ones.
    """

    tag: int
    value: object

    @property
    def kind(self) -> str:
        return CONSTANT_NAMES.get(self.tag, f"tag{self.tag}")


@dataclass(frozen=True)
class MemberRef:
    """Resolved field or method reference."""

    tag: int
    owner: str
    name: str
    descriptor: str

    @property
    def is_field(self) -> bool:
        return self.tag == CONSTANT_FIELDREF

    @property
    def owner_descriptor(self) -> str:
        return class_descriptor(self.owner)

    def __str__(self) -> str:
        return f"{self.owner_descriptor}.{self.name}:{self.descriptor}"


class ConstantPool:
    """Indexed view over the constant pool entries (index 0 is unused)."""

    def __init__(self, entries: Sequence[Optional[Constant]]) -> None:
        self._entries = list(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[int, Constant]]:
        for index, entry in enumerate(self._entries):
            if entry is not None:
                yield index, entry

    def get(self, index: int, *tags: int) -> Constant:
        if not 0 < index < len(self._entries) or self._entries[index] is None:
            raise ClassFileError(f"invalid constant pool index {index}")
        entry = self._entries[index]
        assert entry is not None
        if tags and entry.tag not in tags:
            expected = ", ".join(CONSTANT_NAMES.get(tag, str(tag)) for tag in tags)
            raise ClassFileError(
                f"constant pool index {index} is {entry.kind}, expected {expected}"
            )
        return entry

    def utf8(self, index: int) -> str:
        value = self.get(index, CONSTANT_UTF8).value
        assert isinstance(value, str)
        return value

    def class_name(self, index: int) -> str:
        (name_index,) = self.get(index, CONSTANT_CLASS).value  # type: ignore[misc]
        return self.utf8(name_index)

    def name_and_type(self, index: int) -> Tuple[str, str]:
        name_index, type_index = self.get(index, CONSTANT_NAME_AND_TYPE).value  # type: ignore[misc]
        return self.utf8(name_index), self.utf8(type_index)

    def member_ref(self, index: int) -> MemberRef:
        entry = self.get(index, *MEMBER_REF_TAGS)
        class_index, nat_index = entry.value  # type: ignore[misc]
        name, descriptor = self.name_and_type(nat_index)
        return MemberRef(entry.tag, self.class_name(class_index), name, descriptor)

    def iter_member_refs(self) -> Iterator[Tuple[int, MemberRef]]:
        for index, entry in self:
            if entry.tag in MEMBER_REF_TAGS:
                yield index, self.member_ref(index)

    def describe(self, index: int) -> str:
        """Return a short human-readable rendering of entry ``index``."""

        entry = self.get(index)
        tag = entry.tag
        if tag == CONSTANT_UTF8:
            return f"utf8{{{entry.value!r}}}"
        if tag in (CONSTANT_INTEGER, CONSTANT_FLOAT, CONSTANT_LONG, CONSTANT_DOUBLE):
            return f"{entry.kind}{{{entry.value!r}}}"
        if tag == CONSTANT_CLASS:
            return f"type{{{self.class_name(index)}}}"
        if tag == CONSTANT_STRING:
            (string_index,) = entry.value  # type: ignore[misc]
            return f"string{{{self.utf8(string_index)!r}}}"
        if tag in MEMBER_REF_TAGS:
            return f"{entry.kind}{{{self.member_ref(index)}}}"
        if tag == CONSTANT_NAME_AND_TYPE:
            name, descriptor = self.name_and_type(index)
            return f"nat{{{name}:{descriptor}}}"
        if tag == CONSTANT_METHOD_HANDLE:
            ref_kind, ref_index = entry.value  # type: ignore[misc]
            # A handle may only point at a field or method ref.
            target = self.get(ref_index, *MEMBER_REF_TAGS)
            return f"method-handle{{{ref_kind}, {target.kind}{{{self.member_ref(ref_index)}}}}}"
        if tag == CONSTANT_METHOD_TYPE:
            (descriptor_index,) = entry.value  # type: ignore[misc]
            return f"method-type{{{self.utf8(descriptor_index)}}}"
        if tag in (CONSTANT_DYNAMIC, CONSTANT_INVOKE_DYNAMIC):
            bootstrap, nat_index = entry.value  # type: ignore[misc]
            name, descriptor = self.name_and_type(nat_index)
            return f"{entry.kind}{{#{bootstrap}, {name}:{descriptor}}}"
        (name_index,) = entry.value  # type: ignore[misc]
        return f"{entry.kind}{{{self.utf8(name_index)}}}"


@dataclass(frozen=True)
class Attribute:
    name: str
    data: bytes


@dataclass(frozen=True)
class ExceptionHandler:
    start_pc: int
    end_pc: int
    handler_pc: int
    catch_type: str | None


@dataclass(frozen=True)
class CodeAttribute:
    """Decoded ``Code`` attribute of a method."""

    max_stack: int
    max_locals: int
    code: bytes
    exception_table: Tuple[ExceptionHandler, ...]
    attributes: Tuple[Attribute, ...]


@dataclass(frozen=True)
class Member:
    """Field or method declared by a class."""

    access_flags: int
    name: str
    descriptor: str
    attributes: Tuple[Attribute, ...]
    code: CodeAttribute | None = None
    annotations: Tuple[str, ...] = ()

    def attribute(self, name: str) -> Attribute | None:
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None


@dataclass(frozen=True)
class ClassFile:
    """Parsed class file."""

    minor_version: int
    major_version: int
    pool: ConstantPool
    access_flags: int
    name: str
    super_name: str | None
    interfaces: Tuple[str, ...]
    fields: Tuple[Member, ...]
    methods: Tuple[Member, ...]
    attributes: Tuple[Attribute, ...] = field(default=())
    annotations: Tuple[str, ...] = field(default=())

    @property
    def descriptor(self) -> str:
        return class_descriptor(self.name)

    @property
    def java_name(self) -> str:
        return self.name.replace("/", ".")

    @property
    def package_name(self) -> str:
        package, _, _ = self.name.rpartition("/")
        return package.replace("/", ".")

    @property
    def is_package_info(self) -> bool:
        return self.name.rpartition("/")[2] == "package-info"

    @classmethod
    def parse(cls, data: bytes) -> "ClassFile":
        return _parse_class(data)

    @classmethod
    def load(cls, path: Path | str) -> "ClassFile":
        with open(Path(path), "rb") as source:
            return cls.parse(source.read())


def class_descriptor(internal_name: str) -> str:
    """Return the type descriptor for an internal class name."""

    if internal_name.startswith("["):
        return internal_name
    return f"L{internal_name};"


def java_name_to_descriptor(name: str) -> str:
    """Convert ``java.lang.Object`` style names to ``Ljava/lang/Object;``."""

    return f"L{name.replace('.', '/')};"


def parse_method_descriptor(descriptor: str) -> Tuple[Tuple[str, ...], str]:
    """Split a method descriptor into parameter types and return type."""

    if not descriptor.startswith("("):
        raise ClassFileError(f"bad method descriptor {descriptor!r}")
    params: List[str] = []
    index = 1
    while True:
        if index >= len(descriptor):
            raise ClassFileError(f"bad method descriptor {descriptor!r}")
        if descriptor[index] == ")":
            break
        end = _field_type_end(descriptor, index)
        params.append(descriptor[index:end])
        index = end
    return_type = descriptor[index + 1 :]
    if return_type != "V" and _field_type_end(return_type, 0) != len(return_type):
        raise ClassFileError(f"bad method descriptor {descriptor!r}")
    return tuple(params), return_type


def _field_type_end(descriptor: str, start: int) -> int:
    index = start
    while index < len(descriptor) and descriptor[index] == "[":
        index += 1
    if index >= len(descriptor):
        raise ClassFileError(f"bad type descriptor {descriptor!r}")
    char = descriptor[index]
    if char == "L":
        end = descriptor.find(";", index)
        if end < 0:
            raise ClassFileError(f"unterminated class descriptor in {descriptor!r}")
        return end + 1
    if char in "BCDFIJSZ":
        return index + 1
    raise ClassFileError(f"bad type descriptor {descriptor!r}")


def _parse_class(data: bytes) -> ClassFile:
    reader = _Reader(data)
    magic = reader.u4()
    if magic != MAGIC:
        raise ClassFileError(f"bad class file magic ({magic:#010x})")
    minor_version = reader.u2()
    major_version = reader.u2()
    pool = _read_constant_pool(reader)

    access_flags = reader.u2()
    name = pool.class_name(reader.u2())
    super_index = reader.u2()
    super_name = pool.class_name(super_index) if super_index else None
    interfaces = tuple(pool.class_name(reader.u2()) for _ in range(reader.u2()))
    fields = tuple(_read_member(reader, pool) for _ in range(reader.u2()))
    methods = tuple(_read_member(reader, pool) for _ in range(reader.u2()))
    attributes = _read_attributes(reader, pool)
    if not reader.at_end():
        raise ClassFileError(f"extra bytes at end of class file (offset {reader.offset:#x})")

    return ClassFile(
        minor_version=minor_version,
        major_version=major_version,
        pool=pool,
        access_flags=access_flags,
        name=name,
        super_name=super_name,
        interfaces=interfaces,
        fields=fields,
        methods=methods,
        attributes=attributes,
        annotations=_collect_annotations(attributes, pool),
    )


def _read_constant_pool(reader: _Reader) -> ConstantPool:
    count = reader.u2()
    entries: List[Optional[Constant]] = [None]
    while len(entries) < count:
        tag = reader.u1()
        if tag == CONSTANT_UTF8:
            length = reader.u2()
            entries.append(Constant(tag, decode_modified_utf8(reader.take(length))))
        elif tag == CONSTANT_INTEGER:
            entries.append(Constant(tag, struct.unpack(">i", reader.take(4))[0]))
        elif tag == CONSTANT_FLOAT:
            entries.append(Constant(tag, struct.unpack(">f", reader.take(4))[0]))
        elif tag in (CONSTANT_LONG, CONSTANT_DOUBLE):
            fmt = ">q" if tag == CONSTANT_LONG else ">d"
            entries.append(Constant(tag, struct.unpack(fmt, reader.take(8))[0]))
            # Eight-byte constants occupy two slots.
            entries.append(None)
        elif tag in (CONSTANT_CLASS, CONSTANT_STRING, CONSTANT_METHOD_TYPE, CONSTANT_MODULE, CONSTANT_PACKAGE):
            entries.append(Constant(tag, (reader.u2(),)))
        elif tag in MEMBER_REF_TAGS or tag in (
            CONSTANT_NAME_AND_TYPE,
            CONSTANT_DYNAMIC,
            CONSTANT_INVOKE_DYNAMIC,
        ):
            entries.append(Constant(tag, (reader.u2(), reader.u2())))
        elif tag == CONSTANT_METHOD_HANDLE:
            entries.append(Constant(tag, (reader.u1(), reader.u2())))
        else:
            raise ClassFileError(
                f"unknown constant pool tag {tag} at index {len(entries)}"
            )
    if len(entries) > count:
        raise ClassFileError("eight-byte constant overruns the constant pool")
    return ConstantPool(entries)


def _read_attributes(reader: _Reader, pool: ConstantPool) -> Tuple[Attribute, ...]:
    attributes: List[Attribute] = []
    for _ in range(reader.u2()):
        name = pool.utf8(reader.u2())
        length = reader.u4()
        attributes.append(Attribute(name, reader.take(length)))
    return tuple(attributes)


def _read_member(reader: _Reader, pool: ConstantPool) -> Member:
    access_flags = reader.u2()
    name = pool.utf8(reader.u2())
    descriptor = pool.utf8(reader.u2())
    attributes = _read_attributes(reader, pool)
    code = None
    for attribute in attributes:
        if attribute.name == "Code":
            code = _parse_code(attribute.data, pool)
            break
    return Member(
        access_flags=access_flags,
        name=name,
        descriptor=descriptor,
        attributes=attributes,
        code=code,
        annotations=_collect_annotations(attributes, pool),
    )


def _parse_code(data: bytes, pool: ConstantPool) -> CodeAttribute:
    reader = _Reader(data)
    max_stack = reader.u2()
    max_locals = reader.u2()
    code = reader.take(reader.u4())
    handlers: List[ExceptionHandler] = []
    for _ in range(reader.u2()):
        start_pc, end_pc, handler_pc, catch_index = (
            reader.u2(),
            reader.u2(),
            reader.u2(),
            reader.u2(),
        )
        catch_type = pool.class_name(catch_index) if catch_index else None
        handlers.append(ExceptionHandler(start_pc, end_pc, handler_pc, catch_type))
    attributes = _read_attributes(reader, pool)
    return CodeAttribute(max_stack, max_locals, code, tuple(handlers), attributes)


def _collect_annotations(
    attributes: Sequence[Attribute], pool: ConstantPool
) -> Tuple[str, ...]:
    found: List[str] = []
    for attribute in attributes:
        if attribute.name in ANNOTATION_ATTRIBUTES:
            reader = _Reader(attribute.data)
            for _ in range(reader.u2()):
                found.append(_read_annotation(reader, pool))
    return tuple(found)


def _read_annotation(reader: _Reader, pool: ConstantPool) -> str:
    type_descriptor = pool.utf8(reader.u2())
    for _ in range(reader.u2()):
        reader.u2()
        _skip_element_value(reader, pool)
    return type_descriptor


def _skip_element_value(reader: _Reader, pool: ConstantPool) -> None:
    tag = chr(reader.u1())
    if tag in "BCDFIJSZsc":
        reader.u2()
    elif tag == "e":
        reader.u2()
        reader.u2()
    elif tag == "@":
        _read_annotation(reader, pool)
    elif tag == "[":
        for _ in range(reader.u2()):
            _skip_element_value(reader, pool)
    else:
        raise ClassFileError(f"unknown annotation element tag {tag!r}")


__all__ = [
    "ACC_ABSTRACT",
    "ACC_ANNOTATION",
    "ACC_FINAL",
    "ACC_INTERFACE",
    "ACC_PRIVATE",
    "ACC_PROTECTED",
    "ACC_PUBLIC",
    "ACC_STATIC",
    "Attribute",
    "ClassFile",
    "ClassFileError",
    "CodeAttribute",
    "Constant",
    "ConstantPool",
    "ExceptionHandler",
    "MAGIC",
    "Member",
    "MemberRef",
    "class_descriptor",
    "decode_modified_utf8",
    "format_access_flags",
    "java_name_to_descriptor",
    "parse_method_descriptor",
]

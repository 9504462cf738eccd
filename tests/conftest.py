"""Pytest configuration: make ``src/`` importable and build class files."""
from __future__ import annotations

import sys
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple

import pytest

_SRC = Path(__file__).resolve().parents[1] / "src"
_src_str = str(_SRC)
if _src_str not in sys.path:
    sys.path.insert(0, _src_str)


def _u2(value: int) -> bytes:
    return value.to_bytes(2, "big")


def _u4(value: int) -> bytes:
    return value.to_bytes(4, "big")


class ClassFileBuilder:
    """Assemble minimal but well-formed class files for tests."""

    def __init__(
        self,
        name: str,
        super_name: str | None = "java/lang/Object",
        access: int = 0x0021,
        major_version: int = 52,
    ) -> None:
        self.name = name
        self.super_name = super_name
        self.access = access
        self.major_version = major_version
        self.interfaces: List[str] = []
        self.annotations: List[str] = []
        self._pool: List[bytes] = []
        self._indices: Dict[Tuple[object, ...], int] = {}
        self._next_index = 1
        self._fields: List[Tuple[int, str, str, Sequence[str]]] = []
        self._methods: List[Tuple[int, str, str, bytes | None, int, int, Sequence[str]]] = []

    def _intern(self, key: Tuple[object, ...], payload: bytes, slots: int = 1) -> int:
        if key in self._indices:
            return self._indices[key]
        index = self._next_index
        self._pool.append(payload)
        self._indices[key] = index
        self._next_index += slots
        return index

    def utf8(self, text: str) -> int:
        raw = text.encode("utf-8")
        return self._intern(("utf8", text), b"\x01" + _u2(len(raw)) + raw)

    def class_ref(self, name: str) -> int:
        return self._intern(("class", name), b"\x07" + _u2(self.utf8(name)))

    def string(self, text: str) -> int:
        return self._intern(("string", text), b"\x08" + _u2(self.utf8(text)))

    def integer(self, value: int) -> int:
        return self._intern(("int", value), b"\x03" + value.to_bytes(4, "big", signed=True))

    def long(self, value: int) -> int:
        return self._intern(("long", value), b"\x05" + value.to_bytes(8, "big", signed=True), slots=2)

    @property
    def next_index(self) -> int:
        return self._next_index

    def method_handle(self, ref_kind: int, reference: int) -> int:
        payload = b"\x0f" + bytes([ref_kind]) + _u2(reference)
        return self._intern(("handle", ref_kind, reference), payload)

    def name_and_type(self, name: str, descriptor: str) -> int:
        payload = b"\x0c" + _u2(self.utf8(name)) + _u2(self.utf8(descriptor))
        return self._intern(("nat", name, descriptor), payload)

    def _member_ref(self, tag: int, owner: str, name: str, descriptor: str) -> int:
        payload = bytes([tag]) + _u2(self.class_ref(owner)) + _u2(self.name_and_type(name, descriptor))
        return self._intern(("ref", tag, owner, name, descriptor), payload)

    def field_ref(self, owner: str, name: str, descriptor: str) -> int:
        return self._member_ref(9, owner, name, descriptor)

    def method_ref(self, owner: str, name: str, descriptor: str) -> int:
        return self._member_ref(10, owner, name, descriptor)

    def interface_method_ref(self, owner: str, name: str, descriptor: str) -> int:
        return self._member_ref(11, owner, name, descriptor)

    def add_field(
        self, name: str, descriptor: str, access: int = 0x0002, annotations: Sequence[str] = ()
    ) -> "ClassFileBuilder":
        self._fields.append((access, name, descriptor, annotations))
        return self

    def add_method(
        self,
        name: str,
        descriptor: str,
        code: bytes | None = None,
        access: int = 0x0001,
        max_stack: int = 2,
        max_locals: int = 1,
        annotations: Sequence[str] = (),
    ) -> "ClassFileBuilder":
        self._methods.append((access, name, descriptor, code, max_stack, max_locals, annotations))
        return self

    def _annotations_attribute(self, annotations: Sequence[str]) -> bytes:
        body = _u2(len(annotations))
        for descriptor in annotations:
            body += _u2(self.utf8(descriptor)) + _u2(0)
        return _u2(self.utf8("RuntimeVisibleAnnotations")) + _u4(len(body)) + body

    def _member(self, access: int, name: str, descriptor: str, attributes: List[bytes]) -> bytes:
        return (
            _u2(access)
            + _u2(self.utf8(name))
            + _u2(self.utf8(descriptor))
            + _u2(len(attributes))
            + b"".join(attributes)
        )

    def build(self) -> bytes:
        this_index = self.class_ref(self.name)
        super_index = self.class_ref(self.super_name) if self.super_name else 0
        interfaces = [self.class_ref(name) for name in self.interfaces]

        fields = []
        for access, name, descriptor, annotations in self._fields:
            attributes = [self._annotations_attribute(annotations)] if annotations else []
            fields.append(self._member(access, name, descriptor, attributes))

        methods = []
        for access, name, descriptor, code, max_stack, max_locals, annotations in self._methods:
            attributes = []
            if code is not None:
                body = _u2(max_stack) + _u2(max_locals) + _u4(len(code)) + code + _u2(0) + _u2(0)
                attributes.append(_u2(self.utf8("Code")) + _u4(len(body)) + body)
            if annotations:
                attributes.append(self._annotations_attribute(annotations))
            methods.append(self._member(access, name, descriptor, attributes))

        class_attributes = [self._annotations_attribute(self.annotations)] if self.annotations else []

        return (
            _u4(0xCAFEBABE)
            + _u2(0)
            + _u2(self.major_version)
            + _u2(self._next_index)
            + b"".join(self._pool)
            + _u2(self.access)
            + _u2(this_index)
            + _u2(super_index)
            + _u2(len(interfaces))
            + b"".join(_u2(index) for index in interfaces)
            + _u2(len(fields))
            + b"".join(fields)
            + _u2(len(methods))
            + b"".join(methods)
            + _u2(len(class_attributes))
            + b"".join(class_attributes)
        )


def default_constructor(builder: ClassFileBuilder) -> ClassFileBuilder:
    """Add ``<init>()V`` calling the superclass constructor."""

    super_init = builder.method_ref(builder.super_name or "java/lang/Object", "<init>", "()V")
    code = bytes([0x2A, 0xB7]) + _u2(super_init) + bytes([0xB1])
    return builder.add_method("<init>", "()V", code, max_stack=1)


@pytest.fixture
def class_builder() -> Callable[..., ClassFileBuilder]:
    return ClassFileBuilder


@pytest.fixture
def sample_class_bytes() -> bytes:
    """``com/example/Greeter`` with a field, a constructor and a call site."""

    builder = ClassFileBuilder("com/example/Greeter")
    default_constructor(builder)
    builder.add_field("count", "I")
    println = builder.method_ref("java/io/PrintStream", "println", "(Ljava/lang/String;)V")
    out = builder.field_ref("java/lang/System", "out", "Ljava/io/PrintStream;")
    hello = builder.string("hello")
    code = (
        bytes([0xB2]) + _u2(out)
        + bytes([0x12, hello])
        + bytes([0xB6]) + _u2(println)
        + bytes([0xB1])
    )
    builder.add_method("greet", "()V", code)
    return builder.build()


@pytest.fixture
def sample_class_file(tmp_path: Path, sample_class_bytes: bytes) -> Path:
    path = tmp_path / "Greeter.class"
    path.write_bytes(sample_class_bytes)
    return path


def write_jar(path: Path, entries: Dict[str, bytes]) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return path


@pytest.fixture
def jar_writer() -> Callable[[Path, Dict[str, bytes]], Path]:
    return write_jar


@pytest.fixture
def constructor_adder() -> Callable[[ClassFileBuilder], ClassFileBuilder]:
    return default_constructor

"""Decode JVM method bodies into instructions for dumps and searches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

from .classfile import ClassFileError, ConstantPool

__all__ = [
    "Instruction",
    "OP_INFO",
    "decode_instructions",
    "format_instructions",
]

OP_INFO: Dict[int, Tuple[str, str]] = {
    0x00: ("nop", ""),
    0x01: ("aconst_null", ""),
    0x02: ("iconst_m1", ""),
    0x03: ("iconst_0", ""),
    0x04: ("iconst_1", ""),
    0x05: ("iconst_2", ""),
    0x06: ("iconst_3", ""),
    0x07: ("iconst_4", ""),
    0x08: ("iconst_5", ""),
    0x09: ("lconst_0", ""),
    0x0A: ("lconst_1", ""),
    0x0B: ("fconst_0", ""),
    0x0C: ("fconst_1", ""),
    0x0D: ("fconst_2", ""),
    0x0E: ("dconst_0", ""),
    0x0F: ("dconst_1", ""),
    0x10: ("bipush", "s1"),
    0x11: ("sipush", "s2"),
    0x12: ("ldc", "cp1"),
    0x13: ("ldc_w", "cp2"),
    0x14: ("ldc2_w", "cp2"),
    0x15: ("iload", "local"),
    0x16: ("lload", "local"),
    0x17: ("fload", "local"),
    0x18: ("dload", "local"),
    0x19: ("aload", "local"),
    0x1A: ("iload_0", ""),
    0x1B: ("iload_1", ""),
    0x1C: ("iload_2", ""),
    0x1D: ("iload_3", ""),
    0x1E: ("lload_0", ""),
    0x1F: ("lload_1", ""),
    0x20: ("lload_2", ""),
    0x21: ("lload_3", ""),
    0x22: ("fload_0", ""),
    0x23: ("fload_1", ""),
    0x24: ("fload_2", ""),
    0x25: ("fload_3", ""),
    0x26: ("dload_0", ""),
    0x27: ("dload_1", ""),
    0x28: ("dload_2", ""),
    0x29: ("dload_3", ""),
    0x2A: ("aload_0", ""),
    0x2B: ("aload_1", ""),
    0x2C: ("aload_2", ""),
    0x2D: ("aload_3", ""),
    0x2E: ("iaload", ""),
    0x2F: ("laload", ""),
    0x30: ("faload", ""),
    0x31: ("daload", ""),
    0x32: ("aaload", ""),
    0x33: ("baload", ""),
    0x34: ("caload", ""),
    0x35: ("saload", ""),
    0x36: ("istore", "local"),
    0x37: ("lstore", "local"),
    0x38: ("fstore", "local"),
    0x39: ("dstore", "local"),
    0x3A: ("astore", "local"),
    0x3B: ("istore_0", ""),
    0x3C: ("istore_1", ""),
    0x3D: ("istore_2", ""),
    0x3E: ("istore_3", ""),
    0x3F: ("lstore_0", ""),
    0x40: ("lstore_1", ""),
    0x41: ("lstore_2", ""),
    0x42: ("lstore_3", ""),
    0x43: ("fstore_0", ""),
    0x44: ("fstore_1", ""),
    0x45: ("fstore_2", ""),
    0x46: ("fstore_3", ""),
    0x47: ("dstore_0", ""),
    0x48: ("dstore_1", ""),
    0x49: ("dstore_2", ""),
    0x4A: ("dstore_3", ""),
    0x4B: ("astore_0", ""),
    0x4C: ("astore_1", ""),
    0x4D: ("astore_2", ""),
    0x4E: ("astore_3", ""),
    0x4F: ("iastore", ""),
    0x50: ("lastore", ""),
    0x51: ("fastore", ""),
    0x52: ("dastore", ""),
    0x53: ("aastore", ""),
    0x54: ("bastore", ""),
    0x55: ("castore", ""),
    0x56: ("sastore", ""),
    0x57: ("pop", ""),
    0x58: ("pop2", ""),
    0x59: ("dup", ""),
    0x5A: ("dup_x1", ""),
    0x5B: ("dup_x2", ""),
    0x5C: ("dup2", ""),
    0x5D: ("dup2_x1", ""),
    0x5E: ("dup2_x2", ""),
    0x5F: ("swap", ""),
    0x60: ("iadd", ""),
    0x61: ("ladd", ""),
    0x62: ("fadd", ""),
    0x63: ("dadd", ""),
    0x64: ("isub", ""),
    0x65: ("lsub", ""),
    0x66: ("fsub", ""),
    0x67: ("dsub", ""),
    0x68: ("imul", ""),
    0x69: ("lmul", ""),
    0x6A: ("fmul", ""),
    0x6B: ("dmul", ""),
    0x6C: ("idiv", ""),
    0x6D: ("ldiv", ""),
    0x6E: ("fdiv", ""),
    0x6F: ("ddiv", ""),
    0x70: ("irem", ""),
    0x71: ("lrem", ""),
    0x72: ("frem", ""),
    0x73: ("drem", ""),
    0x74: ("ineg", ""),
    0x75: ("lneg", ""),
    0x76: ("fneg", ""),
    0x77: ("dneg", ""),
    0x78: ("ishl", ""),
    0x79: ("lshl", ""),
    0x7A: ("ishr", ""),
    0x7B: ("lshr", ""),
    0x7C: ("iushr", ""),
    0x7D: ("lushr", ""),
    0x7E: ("iand", ""),
    0x7F: ("land", ""),
    0x80: ("ior", ""),
    0x81: ("lor", ""),
    0x82: ("ixor", ""),
    0x83: ("lxor", ""),
    0x84: ("iinc", "iinc"),
    0x85: ("i2l", ""),
    0x86: ("i2f", ""),
    0x87: ("i2d", ""),
    0x88: ("l2i", ""),
    0x89: ("l2f", ""),
    0x8A: ("l2d", ""),
    0x8B: ("f2i", ""),
    0x8C: ("f2l", ""),
    0x8D: ("f2d", ""),
    0x8E: ("d2i", ""),
    0x8F: ("d2l", ""),
    0x90: ("d2f", ""),
    0x91: ("i2b", ""),
    0x92: ("i2c", ""),
    0x93: ("i2s", ""),
    0x94: ("lcmp", ""),
    0x95: ("fcmpl", ""),
    0x96: ("fcmpg", ""),
    0x97: ("dcmpl", ""),
    0x98: ("dcmpg", ""),
    0x99: ("ifeq", "branch2"),
    0x9A: ("ifne", "branch2"),
    0x9B: ("iflt", "branch2"),
    0x9C: ("ifge", "branch2"),
    0x9D: ("ifgt", "branch2"),
    0x9E: ("ifle", "branch2"),
    0x9F: ("if_icmpeq", "branch2"),
    0xA0: ("if_icmpne", "branch2"),
    0xA1: ("if_icmplt", "branch2"),
    0xA2: ("if_icmpge", "branch2"),
    0xA3: ("if_icmpgt", "branch2"),
    0xA4: ("if_icmple", "branch2"),
    0xA5: ("if_acmpeq", "branch2"),
    0xA6: ("if_acmpne", "branch2"),
    0xA7: ("goto", "branch2"),
    0xA8: ("jsr", "branch2"),
    0xA9: ("ret", "local"),
    0xAA: ("tableswitch", "tableswitch"),
    0xAB: ("lookupswitch", "lookupswitch"),
    0xAC: ("ireturn", ""),
    0xAD: ("lreturn", ""),
    0xAE: ("freturn", ""),
    0xAF: ("dreturn", ""),
    0xB0: ("areturn", ""),
    0xB1: ("return", ""),
    0xB2: ("getstatic", "cp2"),
    0xB3: ("putstatic", "cp2"),
    0xB4: ("getfield", "cp2"),
    0xB5: ("putfield", "cp2"),
    0xB6: ("invokevirtual", "cp2"),
    0xB7: ("invokespecial", "cp2"),
    0xB8: ("invokestatic", "cp2"),
    0xB9: ("invokeinterface", "iface"),
    0xBA: ("invokedynamic", "indy"),
    0xBB: ("new", "cp2"),
    0xBC: ("newarray", "atype"),
    0xBD: ("anewarray", "cp2"),
    0xBE: ("arraylength", ""),
    0xBF: ("athrow", ""),
    0xC0: ("checkcast", "cp2"),
    0xC1: ("instanceof", "cp2"),
    0xC2: ("monitorenter", ""),
    0xC3: ("monitorexit", ""),
    0xC4: ("wide", "wide"),
    0xC5: ("multianewarray", "multi"),
    0xC6: ("ifnull", "branch2"),
    0xC7: ("ifnonnull", "branch2"),
    0xC8: ("goto_w", "branch4"),
    0xC9: ("jsr_w", "branch4"),
}

FORMAT_SIZES: Dict[str, int] = {
    "": 1,
    "s1": 2,
    "s2": 3,
    "cp1": 2,
    "cp2": 3,
    "local": 2,
    "iinc": 3,
    "branch2": 3,
    "branch4": 5,
    "iface": 5,
    "indy": 5,
    "atype": 2,
    "multi": 4,
}

CONSTANT_FORMATS = frozenset({"cp1", "cp2", "iface", "indy", "multi"})

ARRAY_TYPES: Dict[int, str] = {
    4: "boolean",
    5: "char",
    6: "float",
    7: "double",
    8: "byte",
    9: "short",
    10: "int",
    11: "long",
}


@dataclass(frozen=True)
class Instruction:
    """Single instruction recovered from a ``Code`` attribute.

    Branch and switch targets in ``operands`` are absolute code offsets.
    """

    offset: int
    bytes: Tuple[int, ...]
    opcode: int
    mnemonic: str
    format: str
    operands: Tuple[int, ...] = ()

    @property
    def constant_index(self) -> int | None:
        if self.format in CONSTANT_FORMATS:
            return self.operands[0]
        return None

    def byte_repr(self, limit: int = 6) -> str:
        shown = " ".join(f"{value:02x}" for value in self.bytes[:limit])
        if len(self.bytes) > limit:
            shown += " .."
        return shown


def _signed(value: int, bits: int) -> int:
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _read(code: bytes, start: int, size: int, *, signed: bool = False) -> int:
    if start + size > len(code):
        raise ClassFileError(f"instruction operand runs past end of code at {start:#x}")
    return int.from_bytes(code[start : start + size], "big", signed=signed)


def decode_instructions(code: bytes) -> List[Instruction]:
    """Return the instructions encoded in ``code``."""

    instructions: List[Instruction] = []
    offset = 0
    length = len(code)
    while offset < length:
        opcode = code[offset]
        info = OP_INFO.get(opcode)
        if info is None:
            raise ClassFileError(f"invalid opcode {opcode:#04x} at offset {offset:#x}")
        mnemonic, fmt = info
        if fmt == "tableswitch":
            size, operands = _decode_tableswitch(code, offset)
        elif fmt == "lookupswitch":
            size, operands = _decode_lookupswitch(code, offset)
        elif fmt == "wide":
            size, mnemonic, operands = _decode_wide(code, offset)
        else:
            size = FORMAT_SIZES[fmt]
            operands = _decode_operands(code, offset, fmt)
        if offset + size > length:
            raise ClassFileError(f"truncated {mnemonic} at offset {offset:#x}")
        instructions.append(
            Instruction(
                offset=offset,
                bytes=tuple(code[offset : offset + size]),
                opcode=opcode,
                mnemonic=mnemonic,
                format=fmt,
                operands=operands,
            )
        )
        offset += size
    return instructions


def _decode_operands(code: bytes, offset: int, fmt: str) -> Tuple[int, ...]:
    if fmt == "":
        return ()
    if fmt == "s1":
        return (_read(code, offset + 1, 1, signed=True),)
    if fmt == "s2":
        return (_read(code, offset + 1, 2, signed=True),)
    if fmt in ("cp1", "local", "atype"):
        return (_read(code, offset + 1, 1),)
    if fmt in ("cp2", "indy"):
        return (_read(code, offset + 1, 2),)
    if fmt == "iinc":
        return (_read(code, offset + 1, 1), _read(code, offset + 2, 1, signed=True))
    if fmt == "branch2":
        return (offset + _read(code, offset + 1, 2, signed=True),)
    if fmt == "branch4":
        return (offset + _read(code, offset + 1, 4, signed=True),)
    if fmt == "iface":
        return (_read(code, offset + 1, 2), _read(code, offset + 3, 1))
    if fmt == "multi":
        return (_read(code, offset + 1, 2), _read(code, offset + 3, 1))
    raise ClassFileError(f"unknown operand format {fmt!r}")  # pragma: no cover


def _decode_tableswitch(code: bytes, offset: int) -> Tuple[int, Tuple[int, ...]]:
    base = offset + 1 + (-(offset + 1) % 4)
    default = offset + _read(code, base, 4, signed=True)
    low = _read(code, base + 4, 4, signed=True)
    high = _read(code, base + 8, 4, signed=True)
    if high < low:
        raise ClassFileError(f"tableswitch at {offset:#x} has high < low")
    targets = tuple(
        offset + _read(code, base + 12 + 4 * index, 4, signed=True)
        for index in range(high - low + 1)
    )
    size = base + 12 + 4 * len(targets) - offset
    return size, (default, low, high, *targets)


def _decode_lookupswitch(code: bytes, offset: int) -> Tuple[int, Tuple[int, ...]]:
    base = offset + 1 + (-(offset + 1) % 4)
    default = offset + _read(code, base, 4, signed=True)
    pairs = _read(code, base + 4, 4, signed=True)
    if pairs < 0:
        raise ClassFileError(f"lookupswitch at {offset:#x} has negative pair count")
    operands: List[int] = [default, pairs]
    for index in range(pairs):
        entry = base + 8 + 8 * index
        operands.append(_read(code, entry, 4, signed=True))
        operands.append(offset + _read(code, entry + 4, 4, signed=True))
    size = base + 8 + 8 * pairs - offset
    return size, tuple(operands)


def _decode_wide(code: bytes, offset: int) -> Tuple[int, str, Tuple[int, ...]]:
    inner = _read(code, offset + 1, 1)
    info = OP_INFO.get(inner)
    if info is None or info[1] not in ("local", "iinc"):
        raise ClassFileError(f"invalid wide opcode {inner:#04x} at offset {offset:#x}")
    index = _read(code, offset + 2, 2)
    if info[1] == "iinc":
        return 6, f"wide {info[0]}", (index, _read(code, offset + 4, 2, signed=True))
    return 4, f"wide {info[0]}", (index,)


def _operand_repr(entry: Instruction, pool: ConstantPool | None) -> str:
    fmt = entry.format
    operands = entry.operands
    if fmt in CONSTANT_FORMATS:
        index = operands[0]
        text = pool.describe(index) if pool is not None else f"#{index}"
        if fmt in ("iface", "multi"):
            text = f"{text}, {operands[1]}"
        return text
    if fmt in ("s1", "s2"):
        return f"#{operands[0]}"
    if fmt == "local":
        return f"v{operands[0]}"
    if fmt in ("iinc", "wide"):
        if len(operands) == 2:
            return f"v{operands[0]}, #{operands[1]}"
        return f"v{operands[0]}"
    if fmt in ("branch2", "branch4"):
        return f"{operands[0]:04x}"
    if fmt == "atype":
        return ARRAY_TYPES.get(operands[0], f"#{operands[0]}")
    if fmt == "tableswitch":
        default, low, _high, *targets = operands
        cases = ", ".join(f"{low + i}: {target:04x}" for i, target in enumerate(targets))
        return f"{{{cases}}} default: {default:04x}"
    if fmt == "lookupswitch":
        default, _pairs, *rest = operands
        cases = ", ".join(f"{rest[i]}: {rest[i + 1]:04x}" for i in range(0, len(rest), 2))
        return f"{{{cases}}} default: {default:04x}"
    return ""


def format_instructions(
    instructions: Sequence[Instruction], pool: ConstantPool | None = None
) -> Iterator[str]:
    """Yield formatted listing lines for ``instructions``."""

    for entry in instructions:
        operand = _operand_repr(entry, pool)
        text = f"{entry.mnemonic} {operand}" if operand else entry.mnemonic
        yield f"{entry.offset:04x}: {entry.byte_repr():<20} {text}"

"""
pickleデータ専用パーサー

Ren'Py のアーカイブインデックスやコンパイル済みスクリプトに含まれる pickle を、
オブジェクト生成を一切行わずにデータ値としてだけ読み取る。
標準の pickle.loads は任意のコードを実行できるため使わない。
"""

import io
import zlib
from typing import Any, BinaryIO, Dict, List, Union

from .errors import PickleDecodeError, ReaderError
from .reader import BinaryReader


class BigInt:
    """
    LONG1/LONG4 で格納された整数（リトルエンディアン2の補数の生バイト列）

    値への変換は to_json() で行う
    """

    __slots__ = ('data',)

    def __init__(self, data: bytes):
        self.data = bytes(data)

    def to_int(self) -> int:
        """8バイトを超える場合は PickleDecodeError"""
        if len(self.data) > 8:
            raise PickleDecodeError(f"8バイトを超える整数は変換できません（{len(self.data)} バイト）")
        return int.from_bytes(self.data, 'little', signed=True)

    def __eq__(self, other) -> bool:
        return isinstance(other, BigInt) and self.data == other.data

    def __hash__(self) -> int:
        return hash(self.data)

    def __repr__(self) -> str:
        return f"BigInt({self.data!r})"


class _Mark:
    def __repr__(self) -> str:
        return "MARK"


MARK = _Mark()

# オペコード
PROTO = 0x80
FRAME = 0x95
STOP = 0x2E
MARK_OP = 0x28
POP = 0x30
POP_MARK = 0x31
DUP = 0x32
NONE = 0x4E
NEWTRUE = 0x88
NEWFALSE = 0x89
BININT = 0x4A
BININT1 = 0x4B
BININT2 = 0x4D
LONG1 = 0x8A
LONG4 = 0x8B
BINFLOAT = 0x47
SHORT_BINSTRING = 0x55
BINSTRING = 0x54
BINUNICODE = 0x58
SHORT_BINUNICODE = 0x8C
BINUNICODE8 = 0x8D
SHORT_BINBYTES = 0x43
BINBYTES = 0x42
BINBYTES8 = 0x8E
EMPTY_DICT = 0x7D
DICT = 0x64
SETITEM = 0x73
SETITEMS = 0x75
EMPTY_LIST = 0x5D
LIST = 0x6C
APPEND = 0x61
APPENDS = 0x65
EMPTY_TUPLE = 0x29
TUPLE = 0x74
TUPLE1 = 0x85
TUPLE2 = 0x86
TUPLE3 = 0x87
BINPUT = 0x71
LONG_BINPUT = 0x72
MEMOIZE = 0x94
BINGET = 0x68
LONG_BINGET = 0x6A

# 対応しないオペコードのエラーメッセージ用の名前
_UNSUPPORTED_NAMES = {
    0x46: 'FLOAT', 0x49: 'INT', 0x4C: 'LONG', 0x50: 'PERSID', 0x51: 'BINPERSID',
    0x52: 'REDUCE', 0x53: 'STRING', 0x56: 'UNICODE', 0x62: 'BUILD', 0x63: 'GLOBAL',
    0x67: 'GET', 0x69: 'INST', 0x6F: 'OBJ', 0x70: 'PUT', 0x81: 'NEWOBJ',
    0x82: 'EXT1', 0x83: 'EXT2', 0x84: 'EXT4', 0x8F: 'EMPTY_SET', 0x90: 'ADDITEMS',
    0x91: 'FROZENSET', 0x92: 'NEWOBJ_EX', 0x93: 'STACK_GLOBAL', 0x96: 'BYTEARRAY8',
    0x97: 'NEXT_BUFFER', 0x98: 'READONLY_BUFFER',
}

SUPPORTED_PROTOCOLS = (2, 3, 4, 5)

Value = Union[None, bool, int, float, BigInt, str, bytes, list, dict, tuple]


class PickleParser:
    """
    スタックとメモを使う pickle インタプリタ

    1インスタンスにつき1回の parse() を想定する
    """

    def __init__(self):
        self.protocol = None
        self._stack: List[Any] = []
        self._memo: List[Any] = []
        self._holes = object()
        self._offset = 0

    # ------------------------------------------------------------------
    # スタック操作
    # ------------------------------------------------------------------

    def _error(self, message: str) -> PickleDecodeError:
        return PickleDecodeError(message, self._offset)

    def _push(self, value: Any) -> None:
        self._stack.append(value)

    def _pop(self) -> Any:
        if not self._stack:
            raise self._error("空のスタックからは取り出せません")
        value = self._stack.pop()
        if value is MARK:
            raise self._error("MARKを値として取り出そうとしました")
        return value

    def _top(self) -> Any:
        if not self._stack:
            raise self._error("スタックが空です")
        value = self._stack[-1]
        if value is MARK:
            raise self._error("スタック先頭がMARKです")
        return value

    def _pop_mark(self) -> List[Any]:
        """直近のMARKまでの値を取り出す（積まれた順）"""
        for index in range(len(self._stack) - 1, -1, -1):
            if self._stack[index] is MARK:
                items = self._stack[index + 1:]
                del self._stack[index:]
                return items
        raise self._error("MARKが見つかりません")

    # ------------------------------------------------------------------
    # メモ
    # ------------------------------------------------------------------

    def _memo_set(self, index: int, value: Any) -> None:
        while index >= len(self._memo):
            self._memo.append(self._holes)
        self._memo[index] = value

    def _memo_get(self, index: int) -> Any:
        if index >= len(self._memo) or self._memo[index] is self._holes:
            raise self._error(f"メモのインデックスが不正です: {index}")
        return self._memo[index]

    # ------------------------------------------------------------------
    # 辞書・リスト
    # ------------------------------------------------------------------

    def _set_items(self, target: Any, items: List[Any]) -> None:
        if not isinstance(target, dict):
            raise self._error("辞書でない値にキーを設定しようとしました")
        if len(items) % 2:
            raise self._error("キーと値の数が合いません")
        for key, value in zip(items[0::2], items[1::2]):
            if not isinstance(key, str):
                raise self._error(f"辞書のキーは文字列である必要があります: {type(key).__name__}")
            target[key] = value

    def _extend(self, target: Any, items: List[Any]) -> None:
        if not isinstance(target, list):
            raise self._error("リストでない値に要素を追加しようとしました")
        target.extend(items)

    # ------------------------------------------------------------------
    # 実行
    # ------------------------------------------------------------------

    def _decode_str(self, data: bytes) -> str:
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise self._error(f"UTF-8として不正な文字列です: {e}") from e

    def _length(self, reader: BinaryReader, fmt: str) -> int:
        length = reader.read(fmt)
        if length < 0:
            raise self._error(f"負の長さです: {length}")
        return length

    def _step(self, reader: BinaryReader) -> bool:
        """オペコードを1つ実行する。STOPならFalseを返す"""
        self._offset = reader.position()
        opcode = reader.read('u8')

        if self.protocol is None:
            if opcode != PROTO:
                raise self._error("最初のオペコードはPROTOである必要があります")
            protocol = reader.read('u8')
            if protocol not in SUPPORTED_PROTOCOLS:
                raise self._error(f"対応していないプロトコルです: {protocol}")
            self.protocol = protocol
            return True

        if opcode == STOP:
            return False
        elif opcode == PROTO:
            raise self._error("PROTOが2回現れました")
        elif opcode == FRAME:
            reader.read('u64')
        elif opcode == MARK_OP:
            self._push(MARK)
        elif opcode == POP:
            if self._stack and self._stack[-1] is MARK:
                self._stack.pop()
            else:
                self._pop()
        elif opcode == POP_MARK:
            self._pop_mark()
        elif opcode == DUP:
            self._push(self._top())
        elif opcode == NONE:
            self._push(None)
        elif opcode == NEWTRUE:
            self._push(True)
        elif opcode == NEWFALSE:
            self._push(False)
        elif opcode == BININT:
            self._push(reader.read('i32'))
        elif opcode == BININT1:
            self._push(reader.read('u8'))
        elif opcode == BININT2:
            self._push(reader.read('u16'))
        elif opcode == LONG1:
            self._push(BigInt(reader.read_buf(reader.read('u8'))))
        elif opcode == LONG4:
            self._push(BigInt(reader.read_buf(self._length(reader, 'i32'))))
        elif opcode == BINFLOAT:
            self._push(reader.read_be('f64'))
        elif opcode in (SHORT_BINSTRING, SHORT_BINUNICODE):
            self._push(self._decode_str(reader.read_buf(reader.read('u8'))))
        elif opcode == BINSTRING:
            self._push(self._decode_str(reader.read_buf(self._length(reader, 'i32'))))
        elif opcode == BINUNICODE:
            self._push(self._decode_str(reader.read_buf(reader.read('u32'))))
        elif opcode == BINUNICODE8:
            self._push(self._decode_str(reader.read_buf(reader.read('u64'))))
        elif opcode == SHORT_BINBYTES:
            self._push(reader.read_buf(reader.read('u8')))
        elif opcode == BINBYTES:
            self._push(reader.read_buf(reader.read('u32')))
        elif opcode == BINBYTES8:
            self._push(reader.read_buf(reader.read('u64')))
        elif opcode == EMPTY_DICT:
            self._push({})
        elif opcode == DICT:
            result: Dict[str, Any] = {}
            self._set_items(result, self._pop_mark())
            self._push(result)
        elif opcode == SETITEM:
            value = self._pop()
            key = self._pop()
            self._set_items(self._top(), [key, value])
        elif opcode == SETITEMS:
            items = self._pop_mark()
            self._set_items(self._top(), items)
        elif opcode == EMPTY_LIST:
            self._push([])
        elif opcode == LIST:
            self._push(self._pop_mark())
        elif opcode == APPEND:
            item = self._pop()
            self._extend(self._top(), [item])
        elif opcode == APPENDS:
            items = self._pop_mark()
            self._extend(self._top(), items)
        elif opcode == EMPTY_TUPLE:
            self._push(())
        elif opcode == TUPLE:
            self._push(tuple(self._pop_mark()))
        elif opcode in (TUPLE1, TUPLE2, TUPLE3):
            count = opcode - TUPLE1 + 1
            items = [self._pop() for _ in range(count)]
            self._push(tuple(reversed(items)))
        elif opcode == BINPUT:
            self._memo_set(reader.read('u8'), self._top())
        elif opcode == LONG_BINPUT:
            self._memo_set(reader.read('u32'), self._top())
        elif opcode == MEMOIZE:
            self._memo.append(self._top())
        elif opcode == BINGET:
            self._push(self._memo_get(reader.read('u8')))
        elif opcode == LONG_BINGET:
            self._push(self._memo_get(reader.read('u32')))
        elif opcode in _UNSUPPORTED_NAMES:
            raise self._error(f"対応していないオペコードです: {_UNSUPPORTED_NAMES[opcode]}")
        else:
            raise self._error(f"不明なオペコードです: 0x{opcode:02X}")
        return True

    def parse(self, stream: BinaryIO) -> Value:
        """
        ストリームから pickle を1つ読み取り、値を返す

        Raises:
            PickleDecodeError: 途中終端・未対応オペコード・スタック不整合など
        """
        reader = BinaryReader.le(stream)
        try:
            while self._step(reader):
                pass
        except ReaderError as e:
            raise PickleDecodeError(f"データが不正です: {e}", self._offset) from e
        return self._pop()


def loads(data: bytes, compressed: bool = False) -> Value:
    """
    バイト列から pickle を読み取る

    Args:
        data: pickle データ
        compressed: Trueの場合はzlibで展開してから読み取る

    Returns:
        デコードした値
    """
    if compressed:
        try:
            data = zlib.decompress(data)
        except zlib.error as e:
            raise PickleDecodeError(f"zlibの展開に失敗しました: {e}") from e
    return PickleParser().parse(io.BytesIO(data))


def to_json(value: Value) -> Any:
    """
    デコードした値をJSON相当の値に変換する

    タプルはリストに、バイナリは整数のリストに、BigInt は整数になる
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, BigInt):
        return value.to_int()
    if isinstance(value, (bytes, bytearray)):
        return list(value)
    if isinstance(value, (list, tuple)):
        return [to_json(item) for item in value]
    if isinstance(value, dict):
        return {key: to_json(item) for key, item in value.items()}
    raise PickleDecodeError(f"JSONに変換できない値です: {type(value).__name__}")

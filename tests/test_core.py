import struct
from enum import Enum

import pytest

from blobstruct import (
    Aggregate,
    ConfigurationError,
    InvalidEnumValueError,
    MemoryStorage,
    StorageExhausted,
    UnexpectedValueError,
    UnrepresentableValueError,
    Validate,
    fields,
    layout_of,
    load,
    load_many,
    pack,
    sizeof,
    store,
    store_many,
    try_load,
    try_store,
    unpack,
)

from bmp import (
    Compression,
    File,
    Header,
    RGB24,
    SecondaryHeaderV4,
    header_data,
    secondary_data,
)


def test_aggregate():
    """Check that building an Aggregate from fields behaves correctly."""
    assert Header._meta.get_ordered_fields_name() == [
        'signature', 'size', 'reserved', 'data_offset',
    ]
    assert sizeof(Header) == 14
    assert layout_of(Header) == {
        'signature': (0, 2),
        'size': (2, 4),
        'reserved': (6, 4),
        'data_offset': (10, 4),
    }

    # from the class we obtain the field itself
    assert isinstance(Header.signature, fields.UInt16Field)
    assert Header.signature.owner is Header
    assert Header.signature.name == 'signature'


def test_default_value():
    header = Header()

    assert header.signature == 0x4d42
    assert header.size == 0
    assert repr(header) == '<Header(signature=0x4d42,size=0x0,reserved=0x0,data_offset=0x0)>'

    secondary = SecondaryHeaderV4()

    assert secondary.header_size == 108
    assert secondary.compression == Compression.NONE
    assert secondary.unused == [0] * 0x58


def test_positional_access():
    header = Header(0x4d42, 1, 2, 3)

    assert header[1] == 1
    assert header.astuple() == (0x4d42, 1, 2, 3)
    assert list(header) == [0x4d42, 1, 2, 3]
    assert header == Header(data_offset=3, reserved=2, size=1)
    assert header != Header()

    with pytest.raises(TypeError):
        Header(1, 2, 3, 4, 5)

    with pytest.raises(TypeError):
        Header(missing=1)


def test_load():
    storage = MemoryStorage(header_data(size=1000, data_offset=122) + b'\xff')

    header = load(Header, storage)

    assert header == Header(size=1000, reserved=0, data_offset=122)
    # the cursor has advanced exactly of the size of the aggregate
    assert storage.tell() == sizeof(Header)


def test_load_bad_signature():
    data = bytes.fromhex('41 4D 10 00 00 00 00 00 00 00 00 00 00 00')

    with pytest.raises(UnexpectedValueError) as excinfo:
        load(Header, MemoryStorage(data))

    error = excinfo.value
    assert error.field == 'signature'
    assert error.expected == 0x4d42
    assert error.actual == struct.unpack('=H', b'AM')[0]


def test_enum_bounds():
    with pytest.raises(InvalidEnumValueError) as excinfo:
        unpack(SecondaryHeaderV4, secondary_data(compression=9))

    assert excinfo.value.field == 'compression'
    assert excinfo.value.actual == 9

    secondary = unpack(SecondaryHeaderV4, secondary_data(compression=3))

    assert secondary.compression == Compression.BITFIELDS


class Sparse(Enum):
    ZERO = 0
    TWO = 2
    FOUR = 4


def test_enum_membership_vs_bounds():
    class Member(Aggregate):
        value = fields.UInt8Field(enum=Sparse, validate=Validate.ENUM)

    class Bounds(Aggregate):
        value = fields.UInt8Field(enum=Sparse, validate=Validate.ENUM_BOUNDS)

    class Unchecked(Aggregate):
        value = fields.UInt8Field(enum=Sparse)

    assert unpack(Member, b'\x02').value == Sparse.TWO

    with pytest.raises(InvalidEnumValueError):
        unpack(Member, b'\x01')

    # inside the bounds but not a member: we obtain the integer
    assert unpack(Bounds, b'\x01').value == 1

    with pytest.raises(InvalidEnumValueError):
        unpack(Bounds, b'\x05')

    assert unpack(Unchecked, b'\x07').value == 7


def test_validation_order():
    """The expected value is checked before the enum."""
    class Tagged(Aggregate):
        kind = fields.UInt8Field(enum=Compression, equals_to=Compression.RLE8, validate=Validate.ENUM)

    with pytest.raises(UnexpectedValueError) as excinfo:
        unpack(Tagged, b'\x09')

    assert not isinstance(excinfo.value, InvalidEnumValueError)
    assert excinfo.value.expected == Compression.RLE8
    assert excinfo.value.actual == 9


def test_nested_error_chain():
    data = header_data() + secondary_data(num_planes=2)

    with pytest.raises(UnexpectedValueError) as excinfo:
        load(File, data)

    assert excinfo.value.chain == ['secondary', 'num_planes']
    assert excinfo.value.field == 'secondary.num_planes'
    assert str(excinfo.value) == 'secondary.num_planes: expected 1, found 2'


def test_array_error_chain():
    class Entry(Aggregate):
        color = fields.ArrayField(fields.UInt8Field(), 3)
        reserved = fields.UInt8Field(equals_to=0)

    class Palette(Aggregate):
        entries = fields.ArrayField(Entry, 2)

    assert sizeof(Palette) == 8
    assert unpack(Palette, b'\x01\x02\x03\x00\x04\x05\x06\x00').entries[1] == Entry([4, 5, 6], 0)

    with pytest.raises(UnexpectedValueError) as excinfo:
        unpack(Palette, b'\x01\x02\x03\x00\x04\x05\x06\x01')

    assert excinfo.value.field == 'entries[1].reserved'


def test_storage_exhausted():
    with pytest.raises(StorageExhausted):
        load(Header, MemoryStorage(b'\x42\x4d\x00'))


def test_round_trip(bmp_data):
    value = load(File, bmp_data)

    assert value.header.data_offset == 0x7a
    assert value.secondary.width == 2
    assert value.secondary.compression == Compression.NONE

    assert pack(value) == bmp_data
    assert unpack(File, pack(value)) == value

    value.secondary.compression = Compression.RLE4
    value.secondary.unused[0] = 0xff

    assert unpack(File, pack(value)) == value


def test_store_into_storage():
    storage = MemoryStorage(bytearray(sizeof(Header) + 2))
    storage.seek(2)

    store(storage, Header(size=0x10))

    assert storage.tell() == 16
    assert storage.getvalue() == b'\x00\x00' + header_data(size=0x10, data_offset=0)


def test_store_unrepresentable():
    with pytest.raises(UnrepresentableValueError) as excinfo:
        pack(Header(size=-1))

    assert excinfo.value.field == 'size'

    with pytest.raises(UnrepresentableValueError) as excinfo:
        pack(File(secondary=Header()))

    assert excinfo.value.field == 'secondary'

    secondary = SecondaryHeaderV4(unused=[0] * 3)
    with pytest.raises(UnrepresentableValueError) as excinfo:
        pack(secondary)

    assert excinfo.value.field == 'unused'

    with pytest.raises(UnrepresentableValueError):
        pack(SecondaryHeaderV4(compression=Sparse.TWO))


def test_expected_size():
    """A size mismatch is detected when the class is created."""
    with pytest.raises(ConfigurationError):
        class Broken(Aggregate):
            header_size = fields.UInt32Field()
            rest = fields.ArrayField(fields.UInt8Field(), 96)

            class Meta:
                expected_size = 108


def test_tight_packing():
    class Packed(Aggregate):
        a = fields.UInt32Field()
        b = fields.UInt16Field()
        c = fields.UInt16Field()

        class Meta:
            tight_packing = True

    assert sizeof(Packed) == 8

    # 14 bytes on the wire, 16 in memory
    with pytest.raises(ConfigurationError):
        class Padded(Header):
            class Meta:
                tight_packing = True


def test_unknown_option():
    with pytest.raises(ConfigurationError):
        class Dummy(Aggregate):
            a = fields.UInt8Field()

            class Meta:
                expected_sise = 1


def test_frozen_schema():
    with pytest.raises(ConfigurationError):
        Header.signature.equals_to = 0

    with pytest.raises(ConfigurationError):
        Header._meta.expected_size = 3

    assert Header.signature.equals_to == 0x4d42


def test_inheritance():
    '''subclasses inherit fields'''
    class Father(Aggregate):
        field_a = fields.ArrayField(fields.UInt8Field(), 0x10)
        field_b = fields.UInt32Field()

    class Son(Father):
        field_c = fields.UInt64Field()

        @classmethod
        def configure(cls, descriptor):
            descriptor.member('field_b').equals_to = 0x04030201

    assert Son._meta.get_ordered_fields_name() == ['field_a', 'field_b', 'field_c']
    assert sizeof(Son) == 0x10 + 4 + 8
    # the father is not touched
    assert Father.field_b.equals_to is None
    assert Son.field_b is not Father.field_b

    son = unpack(Son, b'A' * 16 + struct.pack('=IQ', 0x04030201, 5))

    assert son.field_a == [0x41] * 16
    assert son.field_c == 5

    with pytest.raises(UnexpectedValueError):
        unpack(Son, b'A' * 16 + struct.pack('=IQ', 0, 5))

    with pytest.raises(ConfigurationError):
        class Duplicate(Father):
            field_a = fields.UInt8Field()


def test_load_many():
    data = bytes(range(9))

    pixels = load_many(RGB24, MemoryStorage(data), 3)

    assert pixels == [RGB24(0, 1, 2), RGB24(3, 4, 5), RGB24(6, 7, 8)]

    storage = MemoryStorage(data)
    assert load_many(fields.UInt16Field(), storage, 2) == list(struct.unpack('=HH', data[:4]))
    assert storage.tell() == 4

    with pytest.raises(StorageExhausted):
        load_many(RGB24, MemoryStorage(data), 4)

    with pytest.raises(InvalidEnumValueError) as excinfo:
        load_many(fields.UInt8Field(enum=Sparse, validate=Validate.ENUM), b'\x00\x03', 2)

    assert excinfo.value.chain == [1]

    with pytest.raises(ConfigurationError):
        load_many(fields.UInt8Field(validate=Validate.ENUM), b'\x00', 1)


def test_store_many():
    storage = MemoryStorage(bytearray(6))

    store_many(RGB24, storage, [RGB24(1, 2, 3), RGB24(4, 5, 6)])

    assert storage.getvalue() == b'\x01\x02\x03\x04\x05\x06'

    with pytest.raises(UnrepresentableValueError) as excinfo:
        store_many(fields.UInt8Field(), MemoryStorage(bytearray(2)), [1, 256])

    assert excinfo.value.chain == [1]


def test_try_load():
    result = try_load(Header, header_data(size=3))

    assert result.ok
    assert result.unwrap().size == 3

    result = try_load(Header, header_data(signature=0))

    assert not result.ok
    assert isinstance(result.error, UnexpectedValueError)
    with pytest.raises(UnexpectedValueError):
        result.unwrap()

    result = try_load(Header, b'')

    assert isinstance(result.error, StorageExhausted)

    # configuration errors are not a result
    with pytest.raises(ConfigurationError):
        try_load(Compression, b'')


def test_try_store():
    result = try_store(MemoryStorage(bytearray(2)), Header())

    assert isinstance(result.error, StorageExhausted)

    result = try_store(MemoryStorage(bytearray(14)), Header())

    assert result.ok
    assert result.value == Header()


def test_methods(bmp_data):
    value = File.load(bmp_data)

    assert value.pack() == bmp_data

    buffer = bytearray(len(bmp_data))
    value.store(MemoryStorage(buffer))

    assert buffer == bmp_data


def test_many_with_bound_fields():
    """Fields bound to an aggregate are already validated and frozen."""
    storage = MemoryStorage(bytes(8))

    assert load_many(SecondaryHeaderV4.compression, storage, 2) == [Compression.NONE] * 2

    class Magic(Aggregate):
        magic = fields.ArrayField(fields.UInt8Field(), 2, equals_to=b'PK')

    assert load_many(Magic.magic, b'PKPK', 2) == [[0x50, 0x4b]] * 2

    buffer = bytearray(8)
    store_many(SecondaryHeaderV4.compression, MemoryStorage(buffer), [Compression.RLE8, Compression.PNG])

    assert buffer == bytearray(struct.pack('=II', 1, 5))

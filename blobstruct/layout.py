'''
Layout computation: pure functions from a schema to offsets and sizes.

The wire layout is the concatenation of the fields without any padding, so the
offset of a field is the sum of the sizes of the preceding ones. The native
layout (the one a C compiler would use for the same members) is computed only
to check the tight packing of an aggregate.
'''
import struct
from typing import Dict, List, Tuple

from .exceptions import ConfigurationError
from .fields import AggregateField, ArrayField, Field, StructField


def field_size(field: Field) -> int:
    if isinstance(field, StructField):
        return field.size

    if isinstance(field, ArrayField):
        return field.n * field_size(field.element)

    if isinstance(field, AggregateField):
        return aggregate_size(field.aggregate._meta)

    raise ConfigurationError(f'no layout is defined for {field!r}')


def aggregate_size(descriptor) -> int:
    '''the size MUST not be set but MUST be derived from the fields'''
    return sum(field_size(field) for _, field in descriptor.get_fields())


def compute_layout(descriptor) -> Dict[str, Tuple[int, int]]:
    '''It returns a dictionary with couples (offset, size) for each field.'''
    result = {}
    offset = 0
    for name, field in descriptor.get_fields():
        size = field_size(field)
        result[name] = (offset, size)
        offset += size

    return result


def member_offset(descriptor, name: str) -> int:
    offset = 0
    for field_name, field in descriptor.get_fields():
        if field_name == name:
            return offset
        offset += field_size(field)

    raise ConfigurationError(f"'{descriptor.name}' has no field named '{name}'")


def chain_offset(descriptor, fields: List[Field]) -> int:
    '''Cumulative offset of the last field of the chain from the start of the root.

    Each field must be an immediate field of the aggregate of the previous one.'''
    offset = 0
    for field in fields:
        if descriptor is None:
            raise ConfigurationError(f'{field!r} can\'t be reached: the previous field is not an aggregate')

        offset += member_offset(descriptor, field.name)
        descriptor = field.aggregate._meta if isinstance(field, AggregateField) else None

    return offset


def _native_alignment(format: str) -> int:
    # the padding inserted after a char is the alignment requirement
    return struct.calcsize('@c' + format) - struct.calcsize('@' + format)


def _native_field(field: Field) -> Tuple[int, int]:
    if isinstance(field, StructField):
        return struct.calcsize('@' + field.format), _native_alignment(field.format)

    if isinstance(field, ArrayField):
        size, alignment = _native_field(field.element)
        return size * field.n, alignment

    if isinstance(field, AggregateField):
        return _native_aggregate(field.aggregate._meta)

    raise ConfigurationError(f'no layout is defined for {field!r}')


def _round_up(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


def _native_aggregate(descriptor) -> Tuple[int, int]:
    offset = 0
    max_alignment = 1
    for _, field in descriptor.get_fields():
        size, alignment = _native_field(field)
        offset = _round_up(offset, alignment) + size
        max_alignment = max(max_alignment, alignment)

    return _round_up(offset, max_alignment), max_alignment


def native_size(descriptor) -> int:
    '''Size of the members laid out in host memory with the natural alignment'''
    return _native_aggregate(descriptor)[0]

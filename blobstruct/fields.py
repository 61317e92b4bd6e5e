"""
A Field describes one slot of an aggregate: how many bytes it takes on the wire,
how to convert them and which constraints the decoded value must respect.

Fields are descriptors of the schema, the values live in the aggregate instances.
"""
import copy
import logging
import struct
from enum import Enum

from .enum import Endianness, Validate
from .meta import FieldBase
from .exceptions import (
    ConfigurationError,
    InvalidEnumValueError,
    UnexpectedValueError,
    UnrepresentableValueError,
    ValidationError,
)


logger = logging.getLogger(__name__)


INTEGER_FORMATS = 'bBhHiIlLqQ'
FLOATING_POINT_FORMATS = 'efd'
POINTER_FORMATS = 'P'


class Field(FieldBase):
    """Base class to subclass from"""

    def __init__(self, default=None, equals_to=None, validate=Validate.NONE, endianness=Endianness.INHERIT):
        self.name = None
        self.owner = None
        self.default = default
        self.equals_to = equals_to
        self.validate = validate
        self.endianness = endianness

    def __repr__(self):
        owner = self.owner.__name__ if self.owner is not None else None
        return f'<{self.__class__.__name__}({owner}.{self.name})>'

    def check(self):
        '''Raise ConfigurationError if the field is not well defined'''
        if not isinstance(self.endianness, Endianness):
            raise ConfigurationError(f'endianness must be an Endianness, not {self.endianness!r}')

        if not isinstance(self.validate, Validate):
            raise ConfigurationError(f'validate must be a Validate flag, not {self.validate!r}')

        if self.validate != Validate.NONE and getattr(self, 'enum', None) is None:
            raise ConfigurationError('enum validation requested on a field without enum')

    def check_policy(self, policy, endianness: Endianness):
        pass

    def default_value(self):
        return self.default

    def represent(self, value) -> str:
        return repr(value)

    def validate_value(self, value):
        if self.equals_to is not None and value != self.equals_to:
            raise UnexpectedValueError(self.equals_to, value)

        return value

    def load(self, storage, policy, endianness: Endianness):
        '''Read the field from the actual position of the storage; "endianness" is
        the one resolved by the container.'''
        raise NotImplementedError(f"method {self.__class__.__name__}.load() not implemented")

    def store(self, storage, value, policy, endianness: Endianness) -> None:
        raise NotImplementedError(f"method {self.__class__.__name__}.store() not implemented")


class StructField(Field):
    """
    Simplest of the fields: mimic the behaviour of the struct module packing/unpacking
    integers to/from bytes.

    The representative is the integer read in host byte order, the policy converts
    it to the final value. Via the "enum" argument you can indicate some subclass
    of enum.Enum so to have directly a representation of the integer value of the field itself.
    """

    def __init__(self, format, enum=None, **kw):
        if not isinstance(format, str) or len(format) != 1:
            raise ConfigurationError(f'format must be a single struct code, not {format!r}')
        if format in FLOATING_POINT_FORMATS:
            raise ConfigurationError(f"floating point fields are not supported (format '{format}')")
        if format in POINTER_FORMATS:
            raise ConfigurationError('pointers have no meaning outside the host memory')
        if format not in INTEGER_FORMATS:
            raise ConfigurationError(f'unsupported format {format!r}: use one of {INTEGER_FORMATS}')

        self.format = format
        self.enum = enum
        self._enum_bounds = None
        super().__init__(**kw)

    def __repr__(self):
        if not self.enum:
            return f'<{self.__class__.__name__}({self.format})>'

        return f'<{self.__class__.__name__}({self.format}, {self.enum.__name__})>'

    @property
    def size(self) -> int:
        return struct.calcsize(self.get_format())

    @property
    def signed(self) -> bool:
        return self.format.islower()

    @property
    def bounds(self):
        bits = self.size * 8
        if self.signed:
            return -(1 << (bits - 1)), (1 << (bits - 1)) - 1

        return 0, (1 << bits) - 1

    def get_format(self):
        '''standard sizes, host order and no alignment'''
        return '=%s' % self.format

    def _fits(self, value):
        low, high = self.bounds
        return isinstance(value, int) and low <= value <= high

    def _to_enum(self, value, what):
        try:
            return self.enum(value)
        except ValueError:
            raise ConfigurationError(f'{what} {value!r} is not a member of {self.enum.__name__}') from None

    def check(self):
        if isinstance(self.validate, Validate) and (Validate.ENUM | Validate.ENUM_BOUNDS) in self.validate:
            raise ConfigurationError('ENUM and ENUM_BOUNDS validations are mutually exclusive')

        super().check()

        if self.enum is None:
            for what, value in (('expected value', self.equals_to), ('default', self.default)):
                if value is not None and not self._fits(value):
                    raise ConfigurationError(f'{what} {value!r} doesn\'t fit format \'{self.format}\'')
            return

        if not (isinstance(self.enum, type) and issubclass(self.enum, Enum)):
            raise ConfigurationError(f'{self.enum!r} is not an enum')

        values = [_.value for _ in self.enum]
        if not values:
            raise ConfigurationError(f'enum {self.enum.__name__} has no members')

        for value in values:
            if not self._fits(value):
                raise ConfigurationError(
                    f'value {value!r} of enum {self.enum.__name__} doesn\'t fit format \'{self.format}\'')

        # the bounds are computed once here
        self._enum_bounds = (min(values), max(values))

        if self.equals_to is not None and not isinstance(self.equals_to, self.enum):
            self.equals_to = self._to_enum(self.equals_to, 'expected value')

        if self.default is not None and not isinstance(self.default, self.enum):
            self.default = self._to_enum(self.default, 'default')

    def check_policy(self, policy, endianness):
        resolved = self.endianness.resolve(endianness)
        if not policy.supports(resolved):
            raise ConfigurationError(f'{policy!r} can\'t convert {resolved.name} endian data')

    def default_value(self):
        value = self.default if self.default is not None else self.equals_to
        if value is not None:
            return value

        if not self.enum:
            return 0

        try:
            return self.enum(0)
        except ValueError:
            return next(iter(self.enum))

    def represent(self, value):
        if isinstance(value, int) and not isinstance(value, Enum):
            return hex(value)

        return repr(value)

    def validate_value(self, value):
        # the exact value is checked first
        value = super().validate_value(value)

        if self.validate & Validate.ENUM and not isinstance(value, self.enum):
            raise InvalidEnumValueError(self.enum, value)

        if self.validate & Validate.ENUM_BOUNDS:
            integer = value.value if isinstance(value, Enum) else value
            low, high = self._enum_bounds
            if not low <= integer <= high:
                raise InvalidEnumValueError(self.enum, value)

        if self.enum and not isinstance(value, self.enum) and self.validate == Validate.NONE:
            logger.warning('enum %r doesn\'t have element with value 0x%x in it' % (self.enum, value))

        return value

    def load(self, storage, policy, endianness):
        endianness = self.endianness.resolve(endianness)
        raw = storage.load(self.size)
        representative = struct.unpack(self.get_format(), raw)[0]

        return self.validate_value(policy.decode(representative, self, endianness))

    def _check_representable(self, value):
        if isinstance(value, Enum):
            if self.enum is None or not isinstance(value, self.enum):
                raise UnrepresentableValueError(f'{value!r} can\'t be stored in {self!r}', actual=value)
            value = value.value

        if not self._fits(value):
            raise UnrepresentableValueError(
                f'{value!r} doesn\'t fit format \'{self.format}\'', actual=value)

    def store(self, storage, value, policy, endianness):
        endianness = self.endianness.resolve(endianness)
        self._check_representable(value)
        representative = policy.encode(value, self, endianness)
        storage.store(struct.pack(self.get_format(), representative))


class _FixedStructField(StructField):
    FORMAT = None

    def __init__(self, **kw):
        super().__init__(self.FORMAT, **kw)


class Int8Field(_FixedStructField):
    FORMAT = 'b'


class UInt8Field(_FixedStructField):
    FORMAT = 'B'


class Int16Field(_FixedStructField):
    FORMAT = 'h'


class UInt16Field(_FixedStructField):
    FORMAT = 'H'


class Int32Field(_FixedStructField):
    FORMAT = 'i'


class UInt32Field(_FixedStructField):
    FORMAT = 'I'


class Int64Field(_FixedStructField):
    FORMAT = 'q'


class UInt64Field(_FixedStructField):
    FORMAT = 'Q'


class AggregateField(Field):
    '''Nest an aggregate inside another one'''

    def __init__(self, aggregate, **kw):
        self.aggregate = aggregate
        super().__init__(**kw)

    def __repr__(self):
        return f'<{self.__class__.__name__}({getattr(self.aggregate, "__name__", self.aggregate)!r})>'

    def check(self):
        super().check()
        if not hasattr(self.aggregate, '_meta'):
            raise ConfigurationError(f'{self.aggregate!r} is not an aggregate')

        if self.equals_to is not None and not isinstance(self.equals_to, self.aggregate):
            raise ConfigurationError(f'expected value must be a {self.aggregate.__name__}')

    def check_policy(self, policy, endianness):
        self.aggregate._meta.check_policy(policy, self.endianness.resolve(endianness))

    def default_value(self):
        return copy.deepcopy(self.default) if self.default is not None else self.aggregate()

    def load(self, storage, policy, endianness):
        value = self.aggregate._load(storage, policy, self.endianness.resolve(endianness))
        return self.validate_value(value)

    def store(self, storage, value, policy, endianness):
        if not isinstance(value, self.aggregate):
            raise UnrepresentableValueError(
                f'{value!r} is not a {self.aggregate.__name__}', actual=value)

        value._store(storage, policy, self.endianness.resolve(endianness))


class ArrayField(Field):
    '''Un/Pack a fixed number of elements all described by the same field.

    The element can be any field (also another ArrayField) or directly an
    aggregate class. The loaded value is a list.
    '''

    def __init__(self, element, n, **kw):
        if not isinstance(element, Field) and hasattr(element, '_meta'):
            element = AggregateField(element)
        self.element = element
        self.n = n
        super().__init__(**kw)

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.element!r}, n={self.n})>'

    def freeze(self):
        self.element.freeze()
        super().freeze()

    def thaw(self):
        super().thaw()
        self.element.thaw()

    def bind(self, owner, name):
        super().bind(owner, name)
        self.element.bind(owner, name)

    def check(self):
        super().check()
        if not isinstance(self.element, Field):
            raise ConfigurationError(f'{self.element!r} is not a field nor an aggregate')

        if isinstance(self.n, bool) or not isinstance(self.n, int) or self.n < 1:
            raise ConfigurationError(f'the number of elements must be a positive integer, not {self.n!r}')

        self.element.check()

        if self.equals_to is not None:
            self.equals_to = list(self.equals_to)
            if len(self.equals_to) != self.n:
                raise ConfigurationError(f'expected value has {len(self.equals_to)} elements instead of {self.n}')

    def check_policy(self, policy, endianness):
        self.element.check_policy(policy, self.endianness.resolve(endianness))

    def default_value(self):
        if self.default is not None:
            return copy.deepcopy(list(self.default))

        # each element must be an independent object
        return [self.element.default_value() for _ in range(self.n)]

    def represent(self, value):
        return '[%s]' % ', '.join(self.element.represent(_) for _ in value)

    def load(self, storage, policy, endianness):
        endianness = self.endianness.resolve(endianness)
        values = []
        for index in range(self.n):
            try:
                values.append(self.element.load(storage, policy, endianness))
            except ValidationError as e:
                e.chain.insert(0, index)
                raise

        return self.validate_value(values)

    def store(self, storage, value, policy, endianness):
        endianness = self.endianness.resolve(endianness)
        try:
            count = len(value)
        except TypeError:
            raise UnrepresentableValueError(f'{value!r} is not a sequence', actual=value) from None

        if count != self.n:
            raise UnrepresentableValueError(
                f'{count} elements given, expected {self.n}', actual=value)

        for index, element in enumerate(value):
            try:
                self.element.store(storage, element, policy, endianness)
            except ValidationError as e:
                e.chain.insert(0, index)
                raise
